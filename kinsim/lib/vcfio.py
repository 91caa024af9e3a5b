"""Textual VCF model.

pysam does the parsing, but every simulator in this package needs to add samples, FORMAT fields and header lines
on the fly and write out exactly what it means, so records are converted to a light text representation
(str(rec) is the VCF line) and written back out as text.
"""
from collections import OrderedDict
import logging
import os
import re

import pysam

logger = logging.getLogger(__name__)


GT = 'GT'
AF = 'AF'
DENOVO = 'DN'
MISSING = '.'
SPANNING_DELETION = '*'

COLUMNS = ['#CHROM', 'POS', 'ID', 'REF', 'ALT', 'QUAL', 'FILTER', 'INFO']

gt_sep = re.compile('[/|]')


def split_gt(gt):
  """'0|1' -> [0, 1], './.' -> [-1, -1], '.' -> [-1]"""
  return [-1 if a == MISSING else int(a) for a in gt_sep.split(gt)]


def gt_str(alleles, phased=True):
  """[0, 1] -> '0|1', [] -> '.'"""
  if len(alleles) == 0:
    return MISSING
  return ('|' if phased else '/').join(MISSING if a < 0 else str(a) for a in alleles)


def is_symbolic(allele):
  """Symbolic alleles (<DEL>, breakends, spanning deletions) have no literal sequence"""
  return allele.startswith('<') or '[' in allele or ']' in allele or allele == SPANNING_DELETION


def format_af(af):
  """Allele frequency to three decimal places with trailing zeros removed: 0.25 -> '0.25', 1.0 -> '1'"""
  return '{:.3f}'.format(af).rstrip('0').rstrip('.')


class VcfHeader(object):
  def __init__(self, meta=None, samples=None):
    self.meta = list(meta or [])  # '##' lines, no newline
    self.samples = list(samples or [])

  @classmethod
  def from_text(cls, text):
    meta, samples = [], []
    for line in text.splitlines():
      if line.startswith('##'):
        meta.append(line)
      elif line.startswith('#CHROM'):
        samples = line.split('\t')[9:]
    return cls(meta, samples)

  def copy(self):
    return VcfHeader(self.meta, self.samples)

  def add_meta(self, line):
    if line not in self.meta:
      self.meta.append(line)

  def _has(self, kind, _id):
    prefix = '##{}=<ID={},'.format(kind, _id)
    return any(m.startswith(prefix) for m in self.meta)

  def has_format(self, _id):
    return self._has('FORMAT', _id)

  def has_info(self, _id):
    return self._has('INFO', _id)

  def add_format(self, _id, number, _type, description):
    if not self.has_format(_id):
      self.meta.append(
        '##FORMAT=<ID={},Number={},Type={},Description="{}">'.format(_id, number, _type, description))

  def add_info(self, _id, number, _type, description):
    if not self.has_info(_id):
      self.meta.append(
        '##INFO=<ID={},Number={},Type={},Description="{}">'.format(_id, number, _type, description))

  def add_sample(self, name):
    if name in self.samples:
      raise ValueError('Sample "{}" is already present in the VCF'.format(name))
    self.samples.append(name)
    return len(self.samples) - 1

  def sample_index(self, name):
    if name not in self.samples:
      raise ValueError('Sample "{}" is not present in the VCF. Samples are: {}'.format(name, self.samples))
    return self.samples.index(name)

  def add_sample_sex(self, name, sex):
    self.add_meta('##SAMPLE=<ID={},Sex={}>'.format(name, sex.upper()))

  def sexes(self):
    """Sample sex as recorded in ##SAMPLE lines

    :return: dict sample name -> sex string as found in the file
    """
    sex = {}
    for m in self.meta:
      if m.startswith('##SAMPLE=<'):
        fields = parse_structured(m)
        if 'ID' in fields and 'Sex' in fields:
          sex[fields['ID']] = fields['Sex']
    return sex

  def column_line(self):
    return '\t'.join(COLUMNS + (['FORMAT'] + self.samples if self.samples else []))

  def __str__(self):
    return '\n'.join(self.meta + [self.column_line()]) + '\n'


def parse_structured(line):
  """'##SAMPLE=<ID=a,Sex=MALE>' -> {'ID': 'a', 'Sex': 'MALE'}. Quoted values are not expected here"""
  body = line[line.index('<') + 1:line.rindex('>')]
  return OrderedDict(kv.split('=', 1) for kv in body.split(',') if '=' in kv)


class VcfRecord(object):
  __slots__ = ('chrom', 'pos', 'id', 'ref', 'alts', 'qual', 'filter', 'info', 'formats', 'samples')

  def __init__(self, chrom, pos, ref, alts=None, _id=MISSING, qual=MISSING, _filter=MISSING, info=None):
    """

    :param chrom:
    :param pos: 1-based position as written in the VCF
    :param ref:
    :param alts: list of alt alleles
    """
    self.chrom = chrom
    self.pos = pos
    self.id = _id
    self.ref = ref
    self.alts = list(alts or [])
    self.qual = qual
    self.filter = _filter
    self.info = OrderedDict(info or [])  # key -> value, value is None for flags
    self.formats = []
    self.samples = []  # one list of strings per sample, aligned with formats

  @classmethod
  def from_line(cls, line):
    cols = line.rstrip('\n').split('\t')
    if len(cols) < 8:
      raise ValueError('Malformed VCF line, expected at least 8 columns: {}'.format(line))
    rec = cls(cols[0], int(cols[1]), cols[3],
              [] if cols[4] == MISSING else cols[4].split(','),
              _id=cols[2], qual=cols[5], _filter=cols[6])
    if cols[7] != MISSING:
      for kv in cols[7].split(';'):
        k, _, v = kv.partition('=')
        rec.info[k] = v if _ else None
    if len(cols) > 8:
      rec.formats = cols[8].split(':')
      for c in cols[9:]:
        vals = c.split(':')
        rec.samples.append(vals + [MISSING] * (len(rec.formats) - len(vals)))
    return rec

  @property
  def start(self):
    """0-based start"""
    return self.pos - 1

  @property
  def end(self):
    """0-based exclusive end of the reference span"""
    return self.pos - 1 + len(self.ref)

  @property
  def alleles(self):
    return [self.ref] + self.alts

  def get_info(self, key):
    return self.info.get(key)

  def set_info(self, key, value=None):
    self.info[key] = value

  def clear_info(self):
    self.info = OrderedDict()

  def add_format(self, key):
    if key in self.formats:
      return self.formats.index(key)
    self.formats.append(key)
    for s in self.samples:
      s.append(MISSING)
    return len(self.formats) - 1

  def get_format(self, key, sample_idx):
    if key not in self.formats:
      return None
    return self.samples[sample_idx][self.formats.index(key)]

  def set_format(self, key, sample_idx, value):
    self.samples[sample_idx][self.add_format(key)] = value

  def add_sample(self, values):
    """Append a sample column

    :param values: dict FORMAT key -> value string
    """
    for k in values:
      self.add_format(k)
    self.samples.append([values.get(k, MISSING) for k in self.formats])

  def gt(self, sample_idx):
    """Allele indices for a sample, or None if the record carries no genotype for it"""
    v = self.get_format(GT, sample_idx)
    return None if v is None else split_gt(v)

  def _info_str(self):
    if not self.info:
      return MISSING
    return ';'.join(k if v is None else '{}={}'.format(k, v) for k, v in self.info.items())

  def __str__(self):
    cols = [self.chrom, str(self.pos), self.id, self.ref, ','.join(self.alts) or MISSING,
            self.qual, self.filter, self._info_str()]
    if self.samples:
      cols += [':'.join(self.formats)] + [':'.join(s) for s in self.samples]
    return '\t'.join(cols)


def read_vcf(fname):
  """Load a VCF (plain or bgzipped, no index needed) grouping records by contig.

  :param fname:
  :return: VcfHeader, OrderedDict contig -> list of VcfRecord (file order)
  """
  vcf_fp = pysam.VariantFile(fname)
  header = VcfHeader.from_text(str(vcf_fp.header))
  records = OrderedDict()
  cnt = 0
  for rec in vcf_fp:
    r = VcfRecord.from_line(str(rec))
    records.setdefault(r.chrom, []).append(r)
    cnt += 1
  vcf_fp.close()
  logger.debug('Read {} records over {} contigs from {}'.format(cnt, len(records), fname))
  return header, records


def by_sequence(names, records):
  """Walk records in reference sequence order. Contigs the reference does not have are dropped with a warning

  :param names: reference sequence names, in order
  :param records: OrderedDict contig -> list of VcfRecord, as from read_vcf
  :return: iterator of (seq_id, name, records)
  """
  unknown = [c for c in records if c not in set(names)]
  if unknown:
    logger.warning('Ignoring records on contigs not in the reference: {}'.format(unknown))
  for seq_id, name in enumerate(names):
    yield seq_id, name, records.get(name, [])


class VcfWriter(object):
  """Write header and records as text. Names ending in .gz are bgzipped and tabix indexed on close"""

  def __init__(self, fname, header):
    self.fname = fname
    self.compress = fname.endswith('.gz')
    self.text_fname = fname[:-3] if self.compress else fname
    self.fp = open(self.text_fname, 'w')
    self.fp.write(str(header))
    self.cnt = 0

  def write(self, rec):
    self.fp.write(str(rec) + '\n')
    self.cnt += 1

  def close(self):
    self.fp.close()
    if self.compress:
      pysam.tabix_index(self.text_fname, preset='vcf', force=True)
      if os.path.exists(self.text_fname):
        os.remove(self.text_fname)
    logger.debug('Wrote {} records to {}'.format(self.cnt, self.fname))

  def __enter__(self):
    return self

  def __exit__(self, exc_type, exc_val, exc_tb):
    if exc_type is None:
      self.close()
    else:
      self.fp.close()
      if os.path.exists(self.text_fname):
        os.remove(self.text_fname)
