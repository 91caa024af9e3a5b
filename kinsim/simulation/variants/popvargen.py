"""Generate population variants: sites, alleles and allele frequencies, independent of any individual.

Candidates are drawn one at a time and rejected if they are all N or overlap a site we have already accepted.
"""
from bisect import bisect_left, bisect_right
import logging
import os
import time

import numpy as np

from kinsim.lib.vcfio import VcfHeader, VcfRecord, VcfWriter, AF, format_af
import kinsim.simulation.variants.priors as pr

logger = logging.getLogger(__name__)


MAX_RETRIES = 100

AF_TABLE = os.path.join(os.path.dirname(os.path.abspath(__file__)), '..', '..', 'data', 'alt_allele_frequency_counts.txt')


class PopulationVariant(object):
  __slots__ = ('seq_id', 'start', 'ref', 'alts', 'freqs')

  def __init__(self, seq_id, start, ref, alts, freqs):
    """

    :param seq_id: index of sequence in reference
    :param start: 0-based start
    :param ref: reference bases
    :param alts: list of alt allele strings
    :param freqs: list of alt allele frequencies, one per alt
    """
    self.seq_id = seq_id
    self.start = start
    self.ref = ref
    self.alts = alts
    self.freqs = freqs

  @property
  def end(self):
    return self.start + len(self.ref)

  def key(self):
    return self.seq_id, self.start

  def to_vcf_record(self, reference):
    return VcfRecord(reference.names[self.seq_id], self.start + 1, self.ref, list(self.alts),
                     info=[(AF, ','.join(format_af(f) for f in self.freqs))])

  def __repr__(self):
    return '{}:{} {}->{} {}'.format(self.seq_id, self.start, self.ref, self.alts, self.freqs)


class RandomPositionGenerator(object):
  """Uniform over the whole genome, so longer sequences get proportionally more positions"""

  def __init__(self, reference, rng):
    self.lengths = reference.lengths
    self.total_length = sum(self.lengths)
    self.rng = rng

  def next_position(self):
    pos = int(self.rng.rand() * self.total_length)
    for seq_id, l in enumerate(self.lengths):
      if pos < l:
        return seq_id, pos
      pos -= l
    return None


class FixedStepPositionGenerator(object):
  """Every distance bases, sequence after sequence, until we run out of reference"""

  def __init__(self, reference, distance):
    if distance < 1:
      raise ValueError('Distance between variants must be positive')
    self.lengths = reference.lengths
    self.distance = distance
    self.seq_id = 0
    self.pos = 0

  def next_position(self):
    while self.seq_id < len(self.lengths):
      if self.pos >= self.lengths[self.seq_id]:
        self.seq_id += 1
        self.pos = 0
        continue
      ret = self.seq_id, self.pos
      self.pos += self.distance
      return ret
    return None


class FixedAlleleFrequencyChooser(object):
  def __init__(self, af):
    self.af = af

  def choose(self, rng):
    return self.af


class TableAlleleFrequencyChooser(object):
  """Allele frequencies drawn from an empirical frequency spectrum"""

  def __init__(self, cum_counts, alt_freqs):
    self.cum_counts = np.asarray(cum_counts, dtype=float)
    self.alt_freqs = np.asarray(alt_freqs, dtype=float)

  @classmethod
  def make(cls, bias=0.0, fname=AF_TABLE):
    """Load the frequency spectrum table.

    :param bias: from -1 (alt alleles rarer) through 0 (table as is) to 1 (alt alleles more common)
    :param fname: text table of lines '<alt allele frequency> <count>', sorted by frequency
    :return: TableAlleleFrequencyChooser
    """
    if not -1 <= bias <= 1:
      raise ValueError('Bias must be between -1 and 1')
    bias_factor = (bias + 1) / 2
    cum_counts, alt_freqs = [], []
    last_freq, cum_count = 0.0, 0.0
    with open(fname, 'r') as fp:
      for line in fp:
        line = line.strip()
        if not line or line.startswith('#'):
          continue
        parts = line.split()
        if len(parts) != 2:
          raise ValueError('Malformed allele frequency table line "{}"'.format(line))
        freq, count = float(parts[0]), float(parts[1])
        if not last_freq <= freq <= 1 or count < 0:
          raise ValueError('Illegal or out of order entry in allele frequency table "{}"'.format(line))
        cum_count += bias_factor * count * freq + (1 - bias_factor) * count * (1 - freq)
        cum_counts.append(cum_count)
        alt_freqs.append(int(1000 * freq) / 1000)  # 3dp of precision
        last_freq = freq
    if not cum_counts:
      raise ValueError('Empty allele frequency table {}'.format(fname))
    return cls(cum_counts, alt_freqs)

  def choose(self, rng):
    pos = int(rng.rand() * self.cum_counts[-1])
    idx = min(int(np.searchsorted(self.cum_counts, pos, side='left')), len(self.alt_freqs) - 1)
    return float(self.alt_freqs[idx])


class PopulationVariantGenerator(object):
  """Subclasses supply next_variant(). The accepted set is kept as a sorted key list for neighbor lookups"""

  def next_variant(self):
    raise NotImplementedError

  def need_more_variants(self):
    return True

  def accept(self, variant):
    pass

  def generate_population(self):
    """

    :return: list of PopulationVariant sorted by (seq_id, start)
    """
    t0 = time.time()
    keys, accepted = [], {}
    while self.need_more_variants():
      for _ in range(MAX_RETRIES):
        variant = self.next_variant()
        if variant is None or check_valid(variant, keys, accepted):
          break
      else:
        logger.error('Gave up after {} attempts at placing a variant'.format(MAX_RETRIES))
        raise RuntimeError('Too many tries during variant generation')
      if variant is None:
        break
      k = variant.key()
      keys.insert(bisect_left(keys, k), k)
      accepted[k] = variant
      self.accept(variant)
    logger.debug('Generated {} population variants in {:0.2f}s'.format(len(keys), time.time() - t0))
    return [accepted[k] for k in keys]


def check_valid(variant, keys, accepted):
  """Reject all-N (or empty) reference spans and anything overlapping its nearest accepted neighbors

  :param variant: candidate PopulationVariant
  :param keys: sorted list of (seq_id, start) of accepted variants
  :param accepted: dict key -> PopulationVariant
  :return: bool
  """
  if variant.ref.count('N') == len(variant.ref):
    return False
  k = variant.key()
  i = bisect_right(keys, k)
  if i > 0:
    floor = accepted[keys[i - 1]]
    if floor.seq_id == variant.seq_id and floor.end > variant.start:
      return False
  if i < len(keys):
    higher = accepted[keys[i]]
    if higher.seq_id == variant.seq_id and variant.end > higher.start:
      return False
  return True


class PriorPopulationVariantGenerator(PopulationVariantGenerator):
  """Random positions, variant type/length/alleles from priors, allele frequency from a chooser"""

  def __init__(self, reference, priors, rng, freq_chooser=None, target_count=None, bias=0.0):
    """

    :param reference: ReferenceGenome
    :param priors: PopulationPriors
    :param rng: np.random.RandomState
    :param freq_chooser: object with choose(rng). Defaults to the bundled frequency table
    :param target_count: expected variants per genome. Defaults to genome length x prior rate
    :param bias: bias for the frequency table when freq_chooser is not given
    """
    self.reference = reference
    self.priors = priors
    self.rng = rng
    self.freq_chooser = freq_chooser or TableAlleleFrequencyChooser.make(bias)
    self.target_count = int(reference.total_length * priors.rate()) if target_count is None else target_count
    self.positions = RandomPositionGenerator(reference, rng)
    self.accepted_count = 0.0
    logger.debug('Generating {} expected variants per genome'.format(self.target_count))

  def need_more_variants(self):
    return self.accepted_count < self.target_count

  def accept(self, variant):
    self.accepted_count += sum(variant.freqs)  # 1 - p(ref)

  def next_variant(self):
    p = self.positions.next_position()
    if p is None:
      return None
    seq_id, pos = p
    freq = self.freq_chooser.choose(self.rng)
    ref, alt = self.fill_alleles(seq_id, pos)
    return PopulationVariant(seq_id, pos, ref, [alt], [freq])

  def fill_alleles(self, seq_id, pos):
    vtype = self.priors.choose_type(self.rng)
    length = self.priors.choose_length(self.rng, vtype)
    if pos + length >= self.reference.length(seq_id):
      vtype, length = pr.SNP, 1
    read = self.reference.read
    if vtype in (pr.SNP, pr.INSDEL):  # INSDEL is not modelled yet
      ref = read(seq_id, pos, pos + 1)
      return ref, self.priors.choose_alt_snp(self.rng, ref)
    if vtype == pr.MNP:
      ref = read(seq_id, pos, pos + length)
      return ref, self.priors.choose_alt_mnp(self.rng, ref)
    if vtype == pr.DELETE:
      ref = read(seq_id, pos, pos + length + 1)  # With anchor base
      return ref, ref[0]
    if vtype == pr.INSERT:
      template = read(seq_id, pos, pos + length + 1)
      ref = template[0]
      return ref, ref + self.priors.choose_alt_mnp(self.rng, template)[1:]
    raise RuntimeError('Unknown variant type {}'.format(vtype))


def collapse_population_variant(variant):
  """Merge identical alt alleles (summing their frequencies) and drop alleles identical to the reference.
  Alleles are ordered by length, then by sequence.

  :param variant: PopulationVariant, modified in place
  :return: the variant
  """
  merged = {}
  for a, f in zip(variant.alts, variant.freqs):
    merged[a] = merged.get(a, 0.0) + f
  order = sorted((a for a in merged if a != variant.ref), key=lambda x: (len(x), ['NACGT'.index(c) for c in x]))
  variant.alts = order
  variant.freqs = [merged[a] for a in order]
  return variant


class FixedStepPopulationVariantGenerator(PopulationVariantGenerator):
  """One variant described by a mutation spec every distance bases"""

  def __init__(self, reference, distance, mutator, rng, af):
    """

    :param reference: ReferenceGenome
    :param distance: bases between variant positions
    :param mutator: Mutator
    :param rng: np.random.RandomState
    :param af: total frequency of the variant, split equally between the two haplotypes
    """
    self.reference = reference
    self.mutator = mutator
    self.rng = rng
    self.pos_adj = 1 if mutator.is_indel else 0  # anchor base for indels
    self.template_length = mutator.ref_length + self.pos_adj
    self.alt_dist = [af * 0.5, af * 0.5]
    self.positions = FixedStepPositionGenerator(reference, distance)

  def next_variant(self):
    while True:
      p = self.positions.next_position()
      if p is None:
        return None
      seq_id, pos = p
      start = pos - self.pos_adj
      if start < 0 or start + self.template_length >= self.reference.length(seq_id):
        continue
      template = self.reference.read(seq_id, start, start + self.template_length)
      if template.count('N') == len(template):
        continue
      result = self.mutator.generate(template, self.pos_adj, self.rng)
      if result is None:
        continue
      anchor = template[:self.pos_adj]
      variant = collapse_population_variant(
        PopulationVariant(seq_id, start, template,
                          [anchor + result.first, anchor + result.second], list(self.alt_dist)))
      if variant.alts:
        return variant


def write_population_vcf(fname, variants, reference, seed):
  """Write population variants as a sites-only VCF

  :param fname: output file. .gz files are bgzipped and indexed
  :param variants: list of PopulationVariant
  :param reference: ReferenceGenome
  :param seed: recorded in the header
  """
  header = VcfHeader(
    ['##fileformat=VCFv4.2', '##SEED={}'.format(seed), '##reference={}'.format(reference.fasta_fname)] +
    ['##contig=<ID={},length={}>'.format(n, l) for n, l in zip(reference.names, reference.lengths)])
  header.add_info(AF, 'A', 'Float', 'Allele Frequency')
  with VcfWriter(fname, header) as vcf_out:
    for v in variants:
      vcf_out.write(v.to_vcf_record(reference))
