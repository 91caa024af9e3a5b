from kinsim.version import __version__
