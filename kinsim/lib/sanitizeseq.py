"""Collapse everything that is not ACGT to N"""
sanitable = str.maketrans('ATCGNRYSWKMBDHVU', 'ATCGNNNNNNNNNNNN')


def sanitize(seq):
  return seq.upper().translate(sanitable)
