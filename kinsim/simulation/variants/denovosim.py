"""Derive a sample from an existing one, adding de novo mutations.

De novo mutations are generated once, genome wide, at allele frequency 1.0 and then merged into the existing
records. Existing records carry the original sample's genotype over to the derived sample.
"""
import logging
import time

from kinsim.lib.reference import MALE, FEMALE, EITHER, normalize_sex
from kinsim.lib.seeds import make_rng
from kinsim.simulation.variants.popvargen import PriorPopulationVariantGenerator, FixedAlleleFrequencyChooser
from kinsim.simulation.variants.priors import PopulationPriors
import kinsim.lib.vcfio as vio

logger = logging.getLogger(__name__)


def overlaps(a_start, a_end, b):
  return b is not None and a_start < b.end and b.start < a_end


def hom_ref_gt(count):
  return vio.gt_str([0] * count)


class DeNovoSampleSimulator(object):
  def __init__(self, reference, seed, target_mutations, priors=None):
    """

    :param reference: ReferenceGenome
    :param seed: seed for mutation placement and genotypes
    :param target_mutations: expected number of de novo mutations over the genome
    :param priors: PopulationPriors used to shape the mutations
    """
    self.reference = reference
    self.seed = seed
    self.rng = make_rng(seed)
    self.target_mutations = target_mutations
    self.priors = priors or PopulationPriors()
    self.stats = {'added': 0, 'collisions': 0, 'no_ploidy': 0}

  def generate_mutations(self):
    return PriorPopulationVariantGenerator(
      self.reference, self.priors, self.rng,
      freq_chooser=FixedAlleleFrequencyChooser(1.0), target_count=self.target_mutations).generate_population()

  def simulate(self, vcf_in, vcf_out, original, sample):
    """

    :param vcf_in: VCF containing the original sample
    :param vcf_out: output VCF
    :param original: name of the sample to derive from
    :param sample: name of the derived sample. May be the same as original
    :return: dict of counts: de novo mutations added, dropped for collisions, dropped for ploidy NONE
    """
    t0 = time.time()
    header, records = vio.read_vcf(vcf_in)
    if not header.has_format(vio.GT):
      raise ValueError('Input VCF {} does not contain GT information'.format(vcf_in))
    original_idx = header.sample_index(original)
    sexes = {k: normalize_sex(v) for k, v in header.sexes().items()}
    original_sex = sexes.get(original, EITHER)
    header.add_format(vio.DENOVO, 1, 'String', 'De novo allele')
    if sample == original:
      derived_idx = original_idx
    else:
      derived_idx = header.add_sample(sample)
      if original_sex in (MALE, FEMALE):
        header.add_sample_sex(sample, original_sex)
      header.add_meta('##PEDIGREE=<ID={},Derived={},Original={}>'.format(sample, sample, original))
    header.add_meta('##SEED={}'.format(self.seed))
    sample_sexes = [sexes.get(s, EITHER) for s in header.samples]
    logger.debug('Original ID={} Derived ID={} Sex={}'.format(original, sample, original_sex))

    de_novo = self.generate_mutations()
    self.stats = {'added': 0, 'collisions': 0, 'no_ploidy': 0}
    cnt = 0
    with vio.VcfWriter(vcf_out, header) as fp:
      for seq_id, name, seq_records in vio.by_sequence(self.reference.names, records):
        count = self.reference.sequence(seq_id, original_sex).count
        if count > 2:
          raise ValueError('Sequence {}: Unsupported ploidy {}'.format(name, count))
        seq_de_novo = [v for v in de_novo if v.seq_id == seq_id]
        if count == 0:
          self.stats['no_ploidy'] += len(seq_de_novo)
          seq_de_novo = []
        for rec in self.merge_sequence(seq_records, seq_de_novo, count, original_idx, derived_idx, sample_sexes):
          fp.write(rec)
          cnt += 1
    if not any(records.values()):
      logger.warning('No input variants! (is the VCF empty, or against an incorrect reference?)')
    logger.debug('Added {} de novo mutations ({} collisions, {} on sequences {} lacks) in {:0.2f}s'.format(
      self.stats['added'], self.stats['collisions'], self.stats['no_ploidy'], sample, time.time() - t0))
    return self.stats

  def merge_sequence(self, records, de_novo, count, original_idx, derived_idx, sample_sexes):
    """Merge two sorted streams: existing records and de novo mutations on one sequence

    :return: generator of VcfRecord in position order
    """
    de_novo = list(de_novo)
    prev = None
    for rec in records:
      for dn in self.pop_de_novo(de_novo, prev, rec, count, derived_idx, sample_sexes):
        yield dn
      if derived_idx != original_idx:
        gt = rec.get_format(vio.GT, original_idx)
        rec.add_sample({vio.GT: vio.MISSING if gt is None else gt})
      yield rec
      prev = rec
    for dn in self.pop_de_novo(de_novo, prev, None, count, derived_idx, sample_sexes):
      yield dn

  def pop_de_novo(self, de_novo, prev, nxt, count, derived_idx, sample_sexes):
    """De novo mutations that belong before nxt, skipping those that collide with prev or nxt"""
    while de_novo and (nxt is None or de_novo[0].start < nxt.end):
      v = de_novo.pop(0)
      if overlaps(v.start, v.end, prev) or overlaps(v.start, v.end, nxt):
        logger.warning('Skipping de novo mutation at {}:{} to avoid collision with neighboring variants'.format(
          self.reference.names[v.seq_id], v.start + 1))
        self.stats['collisions'] += 1
        continue
      rec = v.to_vcf_record(self.reference)
      rec.clear_info()  # No AF for de novo mutations
      self.add_samples(rec, count, derived_idx, sample_sexes)
      self.stats['added'] += 1
      logger.debug('De novo mutation at {}:{}'.format(rec.chrom, rec.pos))
      yield rec

  def add_samples(self, rec, count, derived_idx, sample_sexes):
    derived_gt = '1' if count == 1 else ('0|1' if self.rng.rand() < 0.5 else '1|0')
    for idx, sex in enumerate(sample_sexes):
      if idx == derived_idx:
        rec.add_sample({vio.GT: derived_gt, vio.DENOVO: 'Y'})
      else:
        rec.add_sample({vio.GT: hom_ref_gt(self.reference.sequence(rec.chrom, sex).count), vio.DENOVO: 'N'})
