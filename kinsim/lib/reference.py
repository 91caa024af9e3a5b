"""Reference genome access.

A reference is a FASTA file (indexed on demand by pysam) plus an optional reference specification file
(reference.txt) sitting next to it that describes, per sex, the ploidy and shape of each sequence:

  version 1
  either  def  diploid   linear
  male    seq  chrX      haploid  linear  chrY
  male    seq  chrY      haploid  linear  chrX
  female  seq  chrY      none     linear
  either  seq  chrM      polyploid  circular

Lookup precedence is: seq line for the sex, seq line for 'either', def line for the sex, def line for 'either',
and finally the default ploidy passed in by the caller.

Passing ploidy=DIPLOID or ploidy=HAPLOID to ReferenceGenome ignores any reference.txt and treats every sequence
as linear with that ploidy, for either sex.
"""
import os
import logging

import pysam

from kinsim.lib.sanitizeseq import sanitize

logger = logging.getLogger(__name__)


REFERENCE_FILE = 'reference.txt'

MALE, FEMALE, EITHER = 'male', 'female', 'either'
NONE, HAPLOID, DIPLOID, POLYPLOID = 'none', 'haploid', 'diploid', 'polyploid'
AUTO = 'auto'  # Use reference.txt if there is one

ploidy_count = {
  NONE: 0,
  HAPLOID: 1,
  DIPLOID: 2,
  POLYPLOID: -1
}


def effective_count(ploidy):
  """Number of copies we model for inheritance. Polyploid sequences (e.g. mitochondria) are passed down as one unit"""
  return 1 if ploidy == POLYPLOID else ploidy_count[ploidy]


def normalize_sex(sex):
  """Accept MALE, Female, unknown etc. and return one of our sex constants"""
  if sex is None:
    return EITHER
  s = sex.lower()
  if s in (MALE, FEMALE, EITHER):
    return s
  if s in ('unknown', '.', ''):
    return EITHER
  raise ValueError('Unknown sex "{}"'.format(sex))


class ReferenceSpec(object):
  """Parsed form of a reference.txt file"""
  __slots__ = ('default_ploidy', 'defaults', 'seqs')

  def __init__(self, default_ploidy=DIPLOID):
    self.default_ploidy = default_ploidy
    self.defaults = {}  # sex -> (ploidy, linear)
    self.seqs = {}  # (sex, name) -> (ploidy, linear, haploid complement)

  def lookup(self, name, sex):
    """Return (ploidy, linear, haploid_complement) for this sequence name and sex

    :param name: sequence name
    :param sex: one of MALE, FEMALE, EITHER
    :return:
    """
    for s in (sex, EITHER):
      if (s, name) in self.seqs:
        return self.seqs[(s, name)]
    for s in (sex, EITHER):
      if s in self.defaults:
        return self.defaults[s] + (None,)
    return self.default_ploidy, True, None


def parse_shape(token, line_no):
  if token not in ('linear', 'circular'):
    raise ValueError('Line {}: unknown sequence shape "{}"'.format(line_no, token))
  return token == 'linear'


def parse_ploidy(token, line_no):
  if token not in ploidy_count:
    raise ValueError('Line {}: unknown ploidy "{}"'.format(line_no, token))
  return token


def read_reference_spec(fname, default_ploidy=DIPLOID):
  """Parse a reference specification file.

  :param fname: path to reference.txt
  :param default_ploidy: used for sequences no line covers
  :return: ReferenceSpec
  """
  spec = ReferenceSpec(default_ploidy)
  version_seen = False
  with open(fname, 'r') as fp:
    for line_no, line in enumerate(fp, 1):
      tokens = line.split('#')[0].split()
      if not tokens:
        continue
      if tokens[0] == 'version':
        if len(tokens) != 2 or tokens[1] != '1':
          raise ValueError('Line {}: unsupported reference file version "{}"'.format(line_no, line.strip()))
        version_seen = True
        continue
      if not version_seen:
        raise ValueError('{}: reference file must start with a version line'.format(fname))
      if len(tokens) < 2:
        raise ValueError('Line {}: too few fields'.format(line_no))
      sex, kind = tokens[0], tokens[1]
      if sex not in (MALE, FEMALE, EITHER):
        raise ValueError('Line {}: unknown sex "{}"'.format(line_no, sex))
      if kind == 'def':
        if len(tokens) != 4:
          raise ValueError('Line {}: def lines need exactly 4 fields'.format(line_no))
        spec.defaults[sex] = (parse_ploidy(tokens[2], line_no), parse_shape(tokens[3], line_no))
      elif kind == 'seq':
        if len(tokens) not in (5, 6):
          raise ValueError('Line {}: seq lines need 5 or 6 fields'.format(line_no))
        spec.seqs[(sex, tokens[2])] = (
          parse_ploidy(tokens[3], line_no),
          parse_shape(tokens[4], line_no),
          tokens[5] if len(tokens) == 6 else None)
      elif kind == 'dup':
        logger.debug('Ignoring PAR region line {}'.format(line_no))
      else:
        raise ValueError('Line {}: unknown line type "{}"'.format(line_no, kind))
  return spec


def format_seq_line(sex, name, ploidy, linear, haploid_complement=None):
  return '\t'.join(
    [sex, 'seq', name, ploidy, 'linear' if linear else 'circular'] +
    ([haploid_complement] if haploid_complement is not None else []))


class ReferenceSequence(object):
  __slots__ = ('seq_id', 'name', 'length', 'ploidy', 'linear', 'haploid_complement')

  def __init__(self, seq_id, name, length, ploidy, linear=True, haploid_complement=None):
    self.seq_id = seq_id
    self.name = name
    self.length = length
    self.ploidy = ploidy
    self.linear = linear
    self.haploid_complement = haploid_complement

  @property
  def count(self):
    return effective_count(self.ploidy)

  def __repr__(self):
    return '{}({}, {}bp, {}, {})'.format(
      self.name, self.seq_id, self.length, self.ploidy, 'linear' if self.linear else 'circular')


class ReferenceGenome(object):
  """Read-only view of a FASTA reference and its per-sex ploidy description"""

  def __init__(self, fasta_fname, reference_spec=None, default_ploidy=DIPLOID, ploidy=AUTO):
    """

    :param fasta_fname: FASTA file. pysam will create the .fai index if it is missing
    :param reference_spec: reference.txt. If None we look for one next to the FASTA
    :param default_ploidy: ploidy for sequences not described by the reference specification
    :param ploidy: AUTO, or DIPLOID/HAPLOID to ignore the reference specification and use that for every sequence
    """
    if ploidy not in (AUTO, DIPLOID, HAPLOID):
      raise ValueError('Ploidy must be one of {}, {} or {}, not "{}"'.format(AUTO, DIPLOID, HAPLOID, ploidy))
    self.fasta_fname = fasta_fname
    self.fasta = pysam.FastaFile(fasta_fname)
    if ploidy != AUTO:
      if reference_spec is not None:
        logger.warning('Ignoring {}, all sequences are {}'.format(reference_spec, ploidy))
      reference_spec, default_ploidy = None, ploidy
    elif reference_spec is None:
      candidate = os.path.join(os.path.dirname(os.path.abspath(fasta_fname)), REFERENCE_FILE)
      if os.path.exists(candidate):
        reference_spec = candidate
    if reference_spec is not None:
      logger.debug('Loading reference specification from {}'.format(reference_spec))
      self.spec = read_reference_spec(reference_spec, default_ploidy)
    else:
      logger.debug('No reference specification found, all sequences are {}'.format(default_ploidy))
      self.spec = ReferenceSpec(default_ploidy)
    self.names = list(self.fasta.references)
    self.lengths = list(self.fasta.lengths)
    self._ids = {name: n for n, name in enumerate(self.names)}
    self._seq_cache = {}

  @property
  def total_length(self):
    return sum(self.lengths)

  def __len__(self):
    return len(self.names)

  def seq_id(self, name):
    if name not in self._ids:
      raise ValueError('Sequence "{}" is not in the reference {}'.format(name, self.fasta_fname))
    return self._ids[name]

  def has_sequence(self, name):
    return name in self._ids

  def length(self, seq_id):
    return self.lengths[seq_id]

  def read(self, seq_id, start, end):
    """Bases [start, end) of a sequence, upper cased with IUPAC codes collapsed to N"""
    return sanitize(self.fasta.fetch(reference=self.names[seq_id], start=start, end=end))

  def read_all(self, seq_id):
    return self.read(seq_id, 0, self.lengths[seq_id])

  def sequence(self, name, sex=EITHER):
    """Ploidy and shape of a sequence for a given sex.

    :param name: sequence name or id
    :param sex: MALE, FEMALE or EITHER
    :return: ReferenceSequence
    """
    seq_id = name if isinstance(name, int) else self.seq_id(name)
    sex = normalize_sex(sex)
    key = (seq_id, sex)
    if key not in self._seq_cache:
      ploidy, linear, complement = self.spec.lookup(self.names[seq_id], sex)
      self._seq_cache[key] = ReferenceSequence(
        seq_id, self.names[seq_id], self.lengths[seq_id], ploidy, linear, complement)
    return self._seq_cache[key]

  def sequences(self, sex=EITHER):
    return [self.sequence(n, sex) for n in range(len(self.names))]

  def close(self):
    self.fasta.close()
