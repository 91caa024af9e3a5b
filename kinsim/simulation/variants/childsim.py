"""Simulate the genotype of a child from the genotypes of its two parents.

Each parent passes on one of its chromosome copies, switching copy at crossovers. Every multi-copy parent
chromosome gets one obligatory crossover (from the genetic map, uniform when there is none) and may get extra
crossovers at a per-base rate of extra_crossover_frequency / chromosome length. PAR regions are not modelled.
"""
from collections import namedtuple
import logging
import time

from kinsim.lib.reference import MALE, FEMALE, EITHER, NONE, HAPLOID, DIPLOID, POLYPLOID, normalize_sex, ploidy_count
from kinsim.lib.seeds import make_rng
from kinsim.simulation.variants.crossover import CrossoverSelector
import kinsim.lib.vcfio as vio

logger = logging.getLogger(__name__)


ChildSpec = namedtuple('ChildSpec', ['father', 'mother', 'child', 'sex'])


class Haplotype(namedtuple('Haplotype', ['index', 'count'])):
  """Which of a parent's chromosome copies is currently being passed on"""
  __slots__ = ()

  def advance(self):
    return self._replace(index=(self.index + 1) % self.count)


def check_ploidy(name, father_count, mother_count, child_count):
  desc = 'Father={} + Mother={} -> Child={}'.format(father_count, mother_count, child_count)
  if child_count == 1 and father_count == 0 and mother_count == 0:
    raise ValueError('Sequence {}: Illegal ploidy combination {}'.format(name, desc))
  if child_count == 2 and (father_count == 0 or mother_count == 0):
    raise ValueError('Sequence {}: Illegal ploidy combination {}'.format(name, desc))
  if child_count > 2 or father_count > 2 or mother_count > 2:
    raise ValueError('Sequence {}: Unsupported ploidy combination {}'.format(name, desc))


def crossed(obligatory, last_pos, pos):
  return last_pos < obligatory <= pos


def advance_haplotype(hap, obligatory, last_pos, pos, per_base_p, rng):
  """Move a parent's haplotype pointer from last_pos up to pos

  :param hap: Haplotype
  :param obligatory: position of this parent's obligatory crossover
  :param last_pos: position of previous record
  :param pos: position of this record
  :param per_base_p: probability of an extra crossover per base
  :param rng: np.random.RandomState
  :return: (Haplotype, True if a crossover happened)
  """
  if hap.count < 2:
    return hap, False
  extra = rng.rand() < (pos - last_pos) * per_base_p
  if crossed(obligatory, last_pos, pos) or extra:
    return hap.advance(), True
  return hap, False


def parent_gt(rec, sample_idx, count, name):
  """Parent allele indices, reference if the record has no genotype (or just ".") for the parent"""
  gt = rec.gt(sample_idx)
  if gt is None or gt == [-1]:
    return [0] * count
  if len(gt) != count:
    logger.error('Unexpected GT arity at {}:{}'.format(rec.chrom, rec.pos))
    raise ValueError('Genotype {} for {} at {}:{} does not match expected ploidy {}'.format(
      vio.gt_str(gt), name, rec.chrom, rec.pos, count))
  return gt


class TrioState(object):
  """Per-chromosome inheritance state of one child"""

  def __init__(self, spec, father_seq, mother_seq, child_seq):
    self.spec = spec
    self.name = child_seq.name
    self.father_count = father_seq.count
    self.mother_count = mother_seq.count
    self.child_ploidy = child_seq.ploidy
    check_ploidy(self.name, self.father_count, self.mother_count, ploidy_count[self.child_ploidy])
    self.father = None
    self.mother = None
    self.father_obligatory = -1
    self.mother_obligatory = -1
    self.per_base_p = 0.0

  def setup(self, rng, selector, child_seq):
    """Initial haplotypes and obligatory crossover positions"""
    if ploidy_count[self.child_ploidy] != 0:
      if self.mother_count > 0:
        self.mother = Haplotype(int(rng.randint(self.mother_count)), self.mother_count)
      if self.father_count > 0:
        self.father = Haplotype(int(rng.randint(self.father_count)), self.father_count)
    if self.father_count > 1:
      self.father_obligatory = selector.choose_position(rng, child_seq, MALE)
    if self.mother_count > 1:
      self.mother_obligatory = selector.choose_position(rng, child_seq, FEMALE)
    self.per_base_p = selector.extra_crossover_frequency / child_seq.length
    logger.debug('{}: {} haplotypes father {} mother {}, obligatory crossovers at {} {}'.format(
      self.spec.child, self.name, self.father, self.mother, self.father_obligatory, self.mother_obligatory))
    return self

  def advance(self, last_pos, pos, rng, stats):
    if self.father is not None:
      self.father, x = advance_haplotype(self.father, self.father_obligatory, last_pos, pos, self.per_base_p, rng)
      if x:
        stats['father'] += 1
        logger.debug('Crossover on father of {} in {}[{}-{}], now haplotype {}'.format(
          self.spec.child, self.name, last_pos + 1, pos + 1, self.father.index))
    if self.mother is not None:
      self.mother, x = advance_haplotype(self.mother, self.mother_obligatory, last_pos, pos, self.per_base_p, rng)
      if x:
        stats['mother'] += 1
        logger.debug('Crossover on mother of {} in {}[{}-{}], now haplotype {}'.format(
          self.spec.child, self.name, last_pos + 1, pos + 1, self.mother.index))

  def child_gt(self, rec, father_idx, mother_idx):
    """GT string for the child at this record"""
    if self.child_ploidy == NONE:
      return vio.MISSING
    if self.child_ploidy == POLYPLOID:  # e.g. mitochondria, inherited from mother as is
      gt = rec.get_format(vio.GT, mother_idx)
      return vio.MISSING if gt is None else gt
    father_gt = parent_gt(rec, father_idx, self.father_count, self.spec.father)
    mother_gt = parent_gt(rec, mother_idx, self.mother_count, self.spec.mother)
    if self.child_ploidy == HAPLOID:
      if self.father_count > self.mother_count:
        return vio.gt_str([father_gt[self.father.index]])
      return vio.gt_str([mother_gt[self.mother.index]])
    if self.child_ploidy == DIPLOID:
      return vio.gt_str([father_gt[self.father.index], mother_gt[self.mother.index]])
    raise ValueError('Unsupported ploidy: {}'.format(self.child_ploidy))


class ChildSampleSimulator(object):
  def __init__(self, reference, seed, selector=None):
    """

    :param reference: ReferenceGenome
    :param seed: seed for haplotype and crossover choices
    :param selector: CrossoverSelector. Default is uniform crossovers and no extra crossovers
    """
    self.reference = reference
    self.seed = seed
    self.rng = make_rng(seed)
    self.selector = selector or CrossoverSelector()
    self.warned_out_of_order = False

  def simulate(self, vcf_in, vcf_out, children):
    """Add one sample column per child

    :param vcf_in: VCF containing the parents
    :param vcf_out: output VCF
    :param children: list of ChildSpec. Parents must be in vcf_in, not in this list
    :return: dict child -> {'father': crossovers, 'mother': crossovers}
    """
    t0 = time.time()
    header, records = vio.read_vcf(vcf_in)
    if not header.has_format(vio.GT):
      raise ValueError('Input VCF {} does not contain GT information'.format(vcf_in))
    sexes = {k: normalize_sex(v) for k, v in header.sexes().items()}

    trios = []
    for c in children:
      c = c._replace(sex=normalize_sex(c.sex))
      father_idx, mother_idx = header.sample_index(c.father), header.sample_index(c.mother)
      child_idx = header.add_sample(c.child)
      if c.sex in (MALE, FEMALE):
        header.add_sample_sex(c.child, c.sex)
      header.add_meta('##PEDIGREE=<ID={},Child={},Mother={},Father={}>'.format(c.child, c.child, c.mother, c.father))
      logger.debug('Father ID={} Sex={} Mother ID={} Sex={} Child ID={} Sex={}'.format(
        c.father, sexes.get(c.father, EITHER), c.mother, sexes.get(c.mother, EITHER), c.child, c.sex))
      trios.append((c, father_idx, mother_idx, child_idx))
    header.add_meta('##SEED={}'.format(self.seed))

    stats = {c.child: {'father': 0, 'mother': 0} for c in children}
    cnt = 0
    with vio.VcfWriter(vcf_out, header) as fp:
      for seq_id, name, seq_records in vio.by_sequence(self.reference.names, records):
        for rec in self.mutate_sequence(seq_id, seq_records, trios, sexes, stats):
          fp.write(rec)
          cnt += 1
    if cnt == 0:
      logger.warning('No input variants! (is the VCF empty, or against an incorrect reference?)')
    for child, s in stats.items():
      logger.info('{}: father crossovers {}, mother crossovers {}'.format(child, s['father'], s['mother']))
    logger.debug('Simulated {} children over {} records in {:0.2f}s'.format(len(trios), cnt, time.time() - t0))
    return stats

  def mutate_sequence(self, seq_id, records, trios, sexes, stats):
    states = []
    for c, father_idx, mother_idx, _ in trios:
      child_seq = self.reference.sequence(seq_id, c.sex)
      state = TrioState(
        c,
        self.reference.sequence(seq_id, sexes.get(c.father, EITHER)),
        self.reference.sequence(seq_id, sexes.get(c.mother, EITHER)),
        child_seq).setup(self.rng, self.selector, child_seq)
      states.append((state, father_idx, mother_idx))

    last_pos = 0
    for rec in records:
      if rec.start < last_pos:
        if not self.warned_out_of_order:
          logger.warning('Out of order VCF records encountered, crossover simulation may be affected.')
          self.warned_out_of_order = True
      else:
        for state, _, _ in states:
          state.advance(last_pos, rec.start, self.rng, stats[state.spec.child])
      rec.add_format(vio.GT)
      for state, father_idx, mother_idx in states:
        rec.add_sample({vio.GT: state.child_gt(rec, father_idx, mother_idx)})
      yield rec
      last_pos = rec.start
