"""Probability model for population variants: which kind of variant, how long, and what it mutates to"""
import json
import logging

import numpy as np

from kinsim.lib.distributions import cumulative_distribution, choose_from_cumulative

logger = logging.getLogger(__name__)


SNP, MNP, INSERT, DELETE, INSDEL = 'SNP', 'MNP', 'INSERT', 'DELETE', 'INSDEL'
VARIANT_TYPES = [SNP, MNP, INSERT, DELETE, INSDEL]

BASES = 'ACGT'

# Conversion from per-base MNP rates to MNP event rates
AVERAGE_HETERO_MNP_LENGTH = 5.8
AVERAGE_HOMO_MNP_LENGTH = 2.1


HUMAN_PRIORS = {
  'snp_rate_hetero': 0.00071,
  'snp_rate_homo': 0.00053,
  'mnp_base_rate_hetero': 0.00008,
  'mnp_base_rate_homo': 0.00002,
  'indel_event_rate': 0.00015,
  # Index is the MNP length, so the first two entries are always 0
  'mnp_length_distribution': [0.0, 0.0, 0.4, 0.2, 0.1, 0.08, 0.06, 0.05, 0.04, 0.03, 0.02, 0.02],
  # Index 0 is an indel of length 1
  'indel_length_distribution': [0.53, 0.15, 0.07, 0.08, 0.03, 0.03, 0.02, 0.03, 0.02, 0.04],
  # ref base -> relative weight of each alt base. Transitions are about twice as common as transversions
  'snp_transitions': {
    'A': {'C': 0.17, 'G': 0.66, 'T': 0.17},
    'C': {'A': 0.17, 'G': 0.17, 'T': 0.66},
    'G': {'A': 0.66, 'C': 0.17, 'T': 0.17},
    'T': {'A': 0.17, 'C': 0.66, 'G': 0.17}
  }
}


def load_priors(fname):
  """Read priors from a JSON file. Keys not present are taken from HUMAN_PRIORS

  :param fname: JSON file
  :return: dict of prior parameters
  """
  with open(fname, 'r') as fp:
    params = json.load(fp)
  unknown = set(params.keys()) - set(HUMAN_PRIORS.keys())
  if unknown:
    raise ValueError('Unknown prior parameters in {}: {}'.format(fname, sorted(unknown)))
  logger.debug('Loaded priors {} from {}'.format(sorted(params.keys()), fname))
  return params


def check_rate(name, rate):
  if not 0.0 <= rate <= 1.0:
    raise ValueError('{} must be 0.0 .. 1.0, not {}'.format(name, rate))
  return rate


class PopulationPriors(object):
  def __init__(self, params=None):
    """

    :param params: dict of prior parameters overriding HUMAN_PRIORS
    """
    p = dict(HUMAN_PRIORS)
    p.update(params or {})
    for k in ['snp_rate_hetero', 'snp_rate_homo', 'mnp_base_rate_hetero', 'mnp_base_rate_homo', 'indel_event_rate']:
      check_rate(k, p[k])

    indel_portion = p['indel_event_rate'] / 3  # Split evenly between insert, delete and insdel
    type_rates = [
      p['snp_rate_hetero'] + p['snp_rate_homo'],
      p['mnp_base_rate_hetero'] / AVERAGE_HETERO_MNP_LENGTH + p['mnp_base_rate_homo'] / AVERAGE_HOMO_MNP_LENGTH,
      indel_portion,
      indel_portion,
      indel_portion
    ]
    self._rate = sum(type_rates)
    self.type_cdf = cumulative_distribution(type_rates)
    self.mnp_length_cdf = cumulative_distribution(p['mnp_length_distribution'])
    self.indel_length_cdf = cumulative_distribution(p['indel_length_distribution'])
    if len(self.mnp_length_cdf) < 3 or self.mnp_length_cdf[1] > 0:
      raise ValueError('MNP length distribution must start at length 2')

    # Per ref base, cumulative distribution over ACGT with the ref base itself at zero
    self.snp_cdf = {
      ref: cumulative_distribution([0.0 if alt == ref else p['snp_transitions'][ref].get(alt, 0.0) for alt in BASES])
      for ref in BASES
    }
    logger.debug('Priors: rate {:g}, type thresholds {}'.format(self._rate, self.type_cdf))

  def rate(self):
    """Expected variant events per base"""
    return self._rate

  def choose_type(self, rng):
    idx = choose_from_cumulative(self.type_cdf, rng.rand())
    if idx >= len(VARIANT_TYPES):
      raise RuntimeError('Invalid variant type distribution')
    return VARIANT_TYPES[idx]

  def choose_length(self, rng, vtype):
    """A draw is always consumed, even for SNPs, so that the random stream does not depend on the type"""
    r = rng.rand()
    if vtype == SNP:
      return 1
    if vtype == MNP:
      return choose_from_cumulative(self.mnp_length_cdf, r)
    if vtype in (INSERT, DELETE, INSDEL):
      return choose_from_cumulative(self.indel_length_cdf, r) + 1
    raise RuntimeError('Unknown variant type {}'.format(vtype))

  def choose_alt_base(self, rng, ref_base):
    if ref_base == 'N':
      return 'N'
    idx = choose_from_cumulative(self.snp_cdf[ref_base], rng.rand())
    if idx >= len(BASES) or BASES[idx] == ref_base:
      raise RuntimeError('Invalid SNP distribution for ref base {}'.format(ref_base))
    return BASES[idx]

  def choose_alt_snp(self, rng, ref):
    return self.choose_alt_base(rng, ref[0])

  def choose_alt_mnp(self, rng, ref):
    """The two ends differ from the reference, the middle is random"""
    if len(ref) < 2:
      raise ValueError('Minimum length of a MNP is 2')
    first = self.choose_alt_base(rng, ref[0])
    last = self.choose_alt_base(rng, ref[-1])
    middle = ''.join(BASES[b] for b in rng.randint(4, size=len(ref) - 2))
    return first + middle + last
