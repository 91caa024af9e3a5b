"""Recombination breakpoints, drawn from empirical genetic maps when we have them and uniformly otherwise.

Genetic map files live in one directory and are named <sex>.<chromosome>.CDF.txt, e.g. female.chr1.CDF.txt.
They are tab separated with the header line

  chr	pos	prob	cdf

and one row per map bin. The cdf column is the cumulative probability of a crossover at or before pos.
"""
import logging
import os

import numpy as np

from kinsim.lib.reference import EITHER

logger = logging.getLogger(__name__)


MAP_EXT = '.CDF.txt'
MAP_HEADER = 'chr\tpos\tprob\tcdf'
POS_COL = 1
CDF_COL = 3


class UniformGeneticMap(object):
  def __init__(self, length):
    self.length = length

  def choose_position(self, rng):
    return int(rng.randint(self.length))

  def __repr__(self):
    return 'Uniform:{}'.format(self.length)


class FileGeneticMap(object):
  def __init__(self, fname, interpolate=True):
    self.fname = fname
    self.interpolate = interpolate
    logger.debug('Loading genetic map from {}'.format(fname))
    pos, cdf = [], []
    with open(fname, 'r') as fp:
      header = fp.readline()
      if not header.startswith(MAP_HEADER):
        logger.error('Malformed genetic map {}'.format(fname))
        raise ValueError('Expected first line of genetic map {} to contain: {}'.format(fname, MAP_HEADER))
      for line in fp:
        if not line.strip():
          continue
        words = line.rstrip('\n').split('\t')
        pos.append(int(words[POS_COL]))
        cdf.append(float(words[CDF_COL]))
    self.pos = np.array(pos, dtype=int)
    self.cdf = np.array(cdf, dtype=float)

  def find_position(self, p):
    """Position of the map bin containing cumulative probability p

    :param p: float in [0, 1)
    :return: position, or 0 if p falls outside the table
    """
    j = int(np.searchsorted(self.cdf, p, side='right')) - 1
    if j < 0 or j >= len(self.cdf) - 1:
      return 0
    if not self.interpolate:
      return int(self.pos[j])
    frac = (p - self.cdf[j]) / (self.cdf[j + 1] - self.cdf[j])
    return int(self.pos[j] + int(frac * (self.pos[j + 1] - self.pos[j])))

  def choose_position(self, rng):
    return self.find_position(rng.rand())

  def __repr__(self):
    return 'Map:{}'.format(os.path.basename(self.fname))


def map_name(seq_name, sex=None):
  return '{}{}'.format(seq_name, MAP_EXT) if sex in (None, EITHER) else '{}.{}{}'.format(sex, seq_name, MAP_EXT)


class CrossoverSelector(object):
  """Owns a cache of the genetic maps it has loaded, keyed by map file name"""

  def __init__(self, genetic_map_dir=None, extra_crossover_frequency=0.0, interpolate=True):
    """

    :param genetic_map_dir: directory holding genetic maps. None means always uniform
    :param extra_crossover_frequency: probability of a second crossover on a chromosome
    :param interpolate: interpolate positions within a map bin
    """
    if not 0.0 <= extra_crossover_frequency <= 1.0:
      raise ValueError('Extra crossover frequency must be 0.0 .. 1.0, not {}'.format(extra_crossover_frequency))
    self.genetic_map_dir = genetic_map_dir
    self.extra_crossover_frequency = extra_crossover_frequency
    self.interpolate = interpolate
    self.maps = {}

  def genetic_map(self, ref_seq, sex):
    """Genetic map for this sequence and sex. A sex specific map is preferred over a generic one and a missing
    map falls back to uniform

    :param ref_seq: ReferenceSequence
    :param sex: MALE, FEMALE or EITHER
    :return: object with choose_position(rng)
    """
    name = map_name(ref_seq.name, sex)
    if name not in self.maps:
      gmap = None
      if self.genetic_map_dir is not None:
        for candidate in [name, map_name(ref_seq.name)]:
          fname = os.path.join(self.genetic_map_dir, candidate)
          if os.path.exists(fname):
            gmap = FileGeneticMap(fname, self.interpolate)
            break
        else:
          logger.warning('Genetic map file {} does not exist, using uniform distribution'.format(
            os.path.join(self.genetic_map_dir, name)))
      self.maps[name] = gmap or UniformGeneticMap(ref_seq.length)
    return self.maps[name]

  def choose_position(self, rng, ref_seq, sex):
    return self.genetic_map(ref_seq, sex).choose_position(rng)

  def crossover_positions(self, rng, ref_seq, sex):
    """Breakpoints for one meiosis: one obligatory crossover and, occasionally, an extra one

    :param rng: np.random.RandomState
    :param ref_seq: ReferenceSequence
    :param sex: sex of the parent
    :return: sorted list of positions
    """
    n = 1 + (rng.rand() < self.extra_crossover_frequency)
    gmap = self.genetic_map(ref_seq, sex)
    return sorted(gmap.choose_position(rng) for _ in range(n))
