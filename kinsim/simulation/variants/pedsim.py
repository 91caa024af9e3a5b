"""Run a whole pedigree: population variants, founders, then families in order, optionally with de novo mutations
and explicit genomes for everyone.

Families must be given in dependency order, i.e. parents are founders or children of an earlier family.
"""
from collections import namedtuple
import logging
import os
import shutil
import tempfile
import time

import kinsim.lib.vcfio as vio
from kinsim.lib.seeds import draw_seed, make_rng
from kinsim.simulation.variants.childsim import ChildSampleSimulator, ChildSpec
from kinsim.simulation.variants.denovosim import DeNovoSampleSimulator
from kinsim.simulation.variants.popvargen import PriorPopulationVariantGenerator, write_population_vcf
from kinsim.simulation.variants.priors import PopulationPriors
from kinsim.simulation.variants.replay import SampleReplayer
from kinsim.simulation.variants.samplesim import SampleSimulator

logger = logging.getLogger(__name__)


Founder = namedtuple('Founder', ['name', 'sex'])
Family = namedtuple('Family', ['father', 'mother', 'children'])  # children: list of Founder-like (name, sex)

POPULATION_VCF = 'population.vcf.gz'
PEDIGREE_VCF = 'pedigree.vcf.gz'


def check_pedigree(founders, families):
  if not founders:
    raise ValueError('A pedigree needs at least one founder')
  known = set()
  for f in founders:
    if f.name in known:
      raise ValueError('Individual "{}" appears more than once'.format(f.name))
    known.add(f.name)
  for fam in families:
    for parent in (fam.father, fam.mother):
      if parent not in known:
        raise ValueError('Parent "{}" must be a founder or a child of an earlier family'.format(parent))
    for c in fam.children:
      if c.name in known:
        raise ValueError('Individual "{}" appears more than once'.format(c.name))
      known.add(c.name)
  return known


def remove_unused_variants(vcf_in, vcf_out):
  """Drop records that no sample carries a non-reference allele for

  :param vcf_in:
  :param vcf_out:
  :return: number of records kept
  """
  header, records = vio.read_vcf(vcf_in)
  kept, dropped = 0, 0
  with vio.VcfWriter(vcf_out, header) as fp:
    for seq_records in records.values():
      for rec in seq_records:
        if any(max(rec.gt(i) or [0]) > 0 for i in range(len(rec.samples))):
          fp.write(rec)
          kept += 1
        else:
          dropped += 1
  logger.debug('Removed {} unused records, kept {}'.format(dropped, kept))
  return kept


def simulate_pedigree(reference, out_dir, founders, families, seed,
                      priors=None, bias=0.0, population_vcf=None, selector=None,
                      de_novo_mutations=0, replay=False, remove_unused=False):
  """

  :param reference: ReferenceGenome
  :param out_dir: output directory, created if needed
  :param founders: list of Founder
  :param families: list of Family, in dependency order
  :param seed: master seed. Each stage is seeded from this
  :param priors: PopulationPriors for population variants and de novo mutations
  :param bias: allele frequency bias for population variants
  :param population_vcf: use these population variants instead of generating them
  :param selector: CrossoverSelector
  :param de_novo_mutations: expected de novo mutations per child. 0 for none
  :param replay: also write out the genome of each individual to out_dir/<name>/
  :param remove_unused: once founders are genotyped, drop population variants none of them carry
  :return: path to the pedigree VCF
  """
  t0 = time.time()
  individuals = check_pedigree(founders, families)
  priors = priors or PopulationPriors()
  seed_rng = make_rng(seed)
  if not os.path.exists(out_dir):
    os.makedirs(out_dir)

  if population_vcf is None:
    pop_seed = draw_seed(seed_rng)
    population_vcf = os.path.join(out_dir, POPULATION_VCF)
    variants = PriorPopulationVariantGenerator(
      reference, priors, make_rng(pop_seed), bias=bias).generate_population()
    write_population_vcf(population_vcf, variants, reference, pop_seed)

  stages = []
  for f in founders:
    stages.append(('founder {}'.format(f.name),
                   SampleSimulator(reference, draw_seed(seed_rng)).simulate, (f.name, f.sex)))
  if remove_unused:
    stages.append(('removal of unused variants', remove_unused_variants, ()))
  for fam in families:
    specs = [ChildSpec(fam.father, fam.mother, c.name, c.sex) for c in fam.children]
    stages.append(('children of {} and {}'.format(fam.father, fam.mother),
                   ChildSampleSimulator(reference, draw_seed(seed_rng), selector).simulate, (specs,)))
    if de_novo_mutations > 0:
      for c in fam.children:
        stages.append(('de novo mutations for {}'.format(c.name),
                       DeNovoSampleSimulator(reference, draw_seed(seed_rng), de_novo_mutations, priors).simulate,
                       (c.name, c.name)))

  final_vcf = os.path.join(out_dir, PEDIGREE_VCF)
  work_dir = tempfile.mkdtemp(dir=out_dir)
  try:
    vcf_in = population_vcf
    for n, (desc, stage, args) in enumerate(stages):
      vcf_out = final_vcf if n == len(stages) - 1 else os.path.join(work_dir, 'stage{}.vcf'.format(n))
      logger.debug('Simulating {}'.format(desc))
      stage(vcf_in, vcf_out, *args)
      vcf_in = vcf_out
  finally:
    shutil.rmtree(work_dir)

  if replay:
    replayer = SampleReplayer(reference)
    for name in sorted(individuals):
      replayer.replay(final_vcf, os.path.join(out_dir, name), name)
  logger.debug('Simulated pedigree of {} individuals in {:0.2f}s'.format(len(individuals), time.time() - t0))
  return final_vcf
