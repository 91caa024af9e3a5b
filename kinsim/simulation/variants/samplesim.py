"""Draw the genotype of one individual from population variants and their allele frequencies"""
import logging
import time

import numpy as np

from kinsim.lib.distributions import choose_from_cumulative
from kinsim.lib.reference import MALE, FEMALE, EITHER, normalize_sex
from kinsim.lib.seeds import make_rng
import kinsim.lib.vcfio as vio

logger = logging.getLogger(__name__)


def allele_distribution(rec, allow_missing_af=True):
  """Cumulative allele distribution for a record with the alt alleles first and the reference last, consuming
  whatever probability mass is left over.

  :param rec: VcfRecord
  :param allow_missing_af: without an AF annotation, all alleles are equally likely. Otherwise the reference is
                           certain
  :return: numpy array of length len(alts) + 1, or None if the record has no AF
  """
  af = rec.get_info(vio.AF)
  n = len(rec.alts) + 1
  if af is None or af == vio.MISSING:
    dist = np.arange(1, n + 1) / n if allow_missing_af else np.zeros(n)
    dist[-1] = 1.0
    return dist, False

  freqs = [float(f) for f in af.split(',')]
  if len(freqs) != len(rec.alts):
    raise ValueError('Incorrect number of AF entries for record {}'.format(rec))
  dist = np.zeros(n)
  dist[:-1] = np.cumsum(freqs)
  if dist[-2] > 1.0:
    raise ValueError('Sum of AF probabilities exceeds 1.0 for record {}'.format(rec))
  dist[-1] = 1.0
  return dist, True


def choose_allele(dist, r):
  """The last bin of dist is the reference

  :param dist: cumulative allele distribution from allele_distribution
  :param r: uniform draw
  :return: allele index (0 = ref)
  """
  a = choose_from_cumulative(dist, r)
  return 0 if a >= len(dist) - 1 else a + 1


class SampleSimulator(object):
  def __init__(self, reference, seed, allow_missing_af=True):
    """

    :param reference: ReferenceGenome
    :param seed: seed for the genotype draws
    :param allow_missing_af: records without AF are drawn uniformly over their alleles if True, else always ref
    """
    self.reference = reference
    self.seed = seed
    self.rng = make_rng(seed)
    self.allow_missing_af = allow_missing_af
    self.missing_af_count = 0
    self.with_af_count = 0

  def simulate(self, vcf_in, vcf_out, sample, sex=EITHER):
    """Add a sample column to vcf_in and write the result to vcf_out

    :param vcf_in: population (or multi-sample) VCF
    :param vcf_out: output VCF. .gz will be bgzipped and indexed
    :param sample: name of new sample
    :param sex: sex of new sample
    :return: number of records written
    """
    t0 = time.time()
    sex = normalize_sex(sex)
    header, records = vio.read_vcf(vcf_in)
    header.add_sample(sample)
    header.add_format(vio.GT, 1, 'String', 'Genotype')
    if sex in (MALE, FEMALE):
      header.add_sample_sex(sample, sex)
    header.add_meta('##SEED={}'.format(self.seed))

    self.missing_af_count, self.with_af_count = 0, 0
    cnt = 0
    with vio.VcfWriter(vcf_out, header) as fp:
      for seq_id, name, seq_records in vio.by_sequence(self.reference.names, records):
        ref_seq = self.reference.sequence(seq_id, sex)
        logger.debug('Selecting genotypes on sequence {} ({})'.format(name, ref_seq.ploidy))
        for rec in self.genotype_sequence(ref_seq, seq_records):
          fp.write(rec)
          cnt += 1

    if cnt == 0:
      logger.warning('No input variants (is the VCF empty, or against an incorrect reference?)')
    else:
      if self.with_af_count == 0 and not self.allow_missing_af:
        logger.warning('No input variants contained allele frequency information.')
      if self.missing_af_count > 0:
        logger.warning('{} input records had no allele frequency information.'.format(self.missing_af_count))
    logger.debug('Genotyped {} records for {} in {:0.2f}s'.format(cnt, sample, time.time() - t0))
    return cnt

  def genotype_sequence(self, ref_seq, records):
    """Records for one sequence, each given a GT for the new sample

    :param ref_seq: ReferenceSequence for the sample's sex
    :param records: list of VcfRecord, sorted
    :return: generator of VcfRecord
    """
    count = ref_seq.count
    last_variant_end = -1
    for rec in records:
      if count == 0:
        alleles = []
      else:
        dist, has_af = allele_distribution(rec, self.allow_missing_af)
        if has_af:
          self.with_af_count += 1
        else:
          self.missing_af_count += 1
        alleles, variant_end = [], last_variant_end
        for _ in range(count):
          if rec.start < last_variant_end:  # Overlaps a non-ref call we already made
            a = 0
          else:
            a = choose_allele(dist, self.rng.rand())
          if a > 0:
            variant_end = max(variant_end, rec.end)
          alleles.append(a)
        last_variant_end = variant_end
      rec.add_format(vio.GT)
      rec.add_sample({vio.GT: vio.gt_str(alleles)})
      yield rec
