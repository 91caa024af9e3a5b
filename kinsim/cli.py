import json
import logging

import click

from kinsim.version import __version__


logger = logging.getLogger(__name__)


SEXES = ['male', 'female', 'either']
PLOIDIES = ['auto', 'diploid', 'haploid']


@click.group()
@click.version_option(version=__version__)
@click.option('-v', '--verbose', type=int, default=0)
def cli(verbose):
  """Simulate variants in a population and pass them down a pedigree"""
  logging.basicConfig(level=[
    logging.ERROR,
    logging.WARNING,
    logging.INFO,
    logging.DEBUG
  ][min(verbose, 3)])
  logger.debug('kinsim version {}'.format(__version__))


def load_reference(fasta, reference_spec, ploidy='auto'):
  from kinsim.lib.reference import ReferenceGenome
  return ReferenceGenome(fasta, reference_spec, ploidy=ploidy)


def load_priors(priors_json):
  from kinsim.simulation.variants.priors import PopulationPriors, load_priors
  return PopulationPriors(load_priors(priors_json) if priors_json else None)


def print_default_priors(ctx, param, value):
  if not value or ctx.resilient_parsing:
    return
  from kinsim.simulation.variants.priors import HUMAN_PRIORS
  click.echo(json.dumps(HUMAN_PRIORS, indent=2, sort_keys=True))
  ctx.exit()


@cli.command('pop-variants', short_help='Generate population variants from priors')
@click.argument('fasta', type=click.Path(exists=True))
@click.argument('vcfout', type=click.Path())
@click.argument('seed', type=int)
@click.option('--reference-spec', type=click.Path(exists=True), help='reference.txt (default: next to FASTA)')
@click.option('--ploidy', type=click.Choice(PLOIDIES), default='auto',
              help='diploid or haploid ignore reference.txt and use that ploidy for every sequence')
@click.option('--priors', 'priors_json', type=click.Path(exists=True), help='JSON file overriding default priors')
@click.option('--bias', type=float, default=0.0, help='Allele frequency bias, -1 (rarer) .. 1 (commoner)')
@click.option('--rate-multiplier', type=float, default=1.0, help='Scale the number of variants generated')
@click.option('--show-priors', is_flag=True, callback=print_default_priors, expose_value=False, is_eager=True,
              help='Print the default priors as JSON')
def pop_variants(fasta, vcfout, seed, reference_spec, ploidy, priors_json, bias, rate_multiplier):
  """Generate a sites-only VCF of population variants with allele frequencies"""
  import kinsim.simulation.variants.popvargen as pvg
  from kinsim.lib.seeds import make_rng
  reference = load_reference(fasta, reference_spec, ploidy)
  priors = load_priors(priors_json)
  target = int(reference.total_length * priors.rate() * rate_multiplier)
  variants = pvg.PriorPopulationVariantGenerator(
    reference, priors, make_rng(seed), target_count=target, bias=bias).generate_population()
  pvg.write_population_vcf(vcfout, variants, reference, seed)


@cli.command('fixed-variants', short_help='Place one kind of variant at regular intervals')
@click.argument('fasta', type=click.Path(exists=True))
@click.argument('vcfout', type=click.Path())
@click.argument('seed', type=int)
@click.option('--reference-spec', type=click.Path(exists=True))
@click.option('--ploidy', type=click.Choice(PLOIDIES), default='auto',
              help='diploid or haploid ignore reference.txt and use that ploidy for every sequence')
@click.option('--distance', type=int, default=1000, help='Bases between variants')
@click.option('--mutation', default='X', help='Mutation spec, e.g. X, 2I, 3D, X_Y for a heterozygous variant')
@click.option('--af', type=float, default=0.5, help='Allele frequency of the variant')
def fixed_variants(fasta, vcfout, seed, reference_spec, ploidy, distance, mutation, af):
  """Mutation spec operations: X (substitute), Y (substitute, differing from other haplotype), I (insert),
  J (insert, differing from other haplotype), D (delete), = or E (copy). Counts may precede operations."""
  import kinsim.simulation.variants.popvargen as pvg
  from kinsim.simulation.variants.mutator import Mutator
  from kinsim.lib.seeds import make_rng
  reference = load_reference(fasta, reference_spec, ploidy)
  variants = pvg.FixedStepPopulationVariantGenerator(
    reference, distance, Mutator(mutation), make_rng(seed), af).generate_population()
  pvg.write_population_vcf(vcfout, variants, reference, seed)


@cli.command('sample-sim', short_help='Draw a sample from population variants')
@click.argument('fasta', type=click.Path(exists=True))
@click.argument('vcfin', type=click.Path(exists=True))
@click.argument('vcfout', type=click.Path())
@click.argument('sample')
@click.argument('seed', type=int)
@click.option('--reference-spec', type=click.Path(exists=True))
@click.option('--ploidy', type=click.Choice(PLOIDIES), default='auto',
              help='diploid or haploid ignore reference.txt and use that ploidy for every sequence')
@click.option('--sex', type=click.Choice(SEXES), default='either')
@click.option('--no-missing-af', is_flag=True, help='Records without AF are always reference')
def sample_sim(fasta, vcfin, vcfout, sample, seed, reference_spec, ploidy, sex, no_missing_af):
  """Add a sample with genotypes drawn from the allele frequencies in VCFIN"""
  from kinsim.simulation.variants.samplesim import SampleSimulator
  SampleSimulator(load_reference(fasta, reference_spec, ploidy), seed, allow_missing_af=not no_missing_af).simulate(
    vcfin, vcfout, sample, sex)


@cli.command('child-sim', short_help='Simulate a child from two parents')
@click.argument('fasta', type=click.Path(exists=True))
@click.argument('vcfin', type=click.Path(exists=True))
@click.argument('vcfout', type=click.Path())
@click.argument('father')
@click.argument('mother')
@click.argument('child')
@click.argument('seed', type=int)
@click.option('--reference-spec', type=click.Path(exists=True))
@click.option('--ploidy', type=click.Choice(PLOIDIES), default='auto',
              help='diploid or haploid ignore reference.txt and use that ploidy for every sequence')
@click.option('--sex', type=click.Choice(SEXES), default='either')
@click.option('--extra-crossovers', type=float, default=0.01, help='Probability of an extra crossover per chromosome')
@click.option('--genetic-maps', type=click.Path(exists=True), help='Directory of <sex>.<chrom>.CDF.txt genetic maps')
def child_sim(fasta, vcfin, vcfout, father, mother, child, seed, reference_spec, ploidy, sex, extra_crossovers,
              genetic_maps):
  """Add a child of FATHER and MOTHER, inheriting their alleles with recombination"""
  from kinsim.simulation.variants.childsim import ChildSampleSimulator, ChildSpec
  from kinsim.simulation.variants.crossover import CrossoverSelector
  ChildSampleSimulator(
    load_reference(fasta, reference_spec, ploidy), seed, CrossoverSelector(genetic_maps, extra_crossovers)).simulate(
    vcfin, vcfout, [ChildSpec(father, mother, child, sex)])


@cli.command('denovo-sim', short_help='Derive a sample with de novo mutations')
@click.argument('fasta', type=click.Path(exists=True))
@click.argument('vcfin', type=click.Path(exists=True))
@click.argument('vcfout', type=click.Path())
@click.argument('original')
@click.argument('sample')
@click.argument('seed', type=int)
@click.option('--reference-spec', type=click.Path(exists=True))
@click.option('--ploidy', type=click.Choice(PLOIDIES), default='auto',
              help='diploid or haploid ignore reference.txt and use that ploidy for every sequence')
@click.option('--num-mutations', type=int, default=70, help='Expected number of de novo mutations')
@click.option('--priors', 'priors_json', type=click.Path(exists=True), help='JSON file overriding default priors')
def denovo_sim(fasta, vcfin, vcfout, original, sample, seed, reference_spec, ploidy, num_mutations, priors_json):
  """Copy ORIGINAL to SAMPLE (which may be the same name) and add de novo mutations to it"""
  from kinsim.simulation.variants.denovosim import DeNovoSampleSimulator
  stats = DeNovoSampleSimulator(
    load_reference(fasta, reference_spec, ploidy), seed, num_mutations, load_priors(priors_json)).simulate(
    vcfin, vcfout, original, sample)
  logger.info('De novo mutations: {}'.format(stats))


@cli.command('replay', short_help='Write out the genome of a sample')
@click.argument('fasta', type=click.Path(exists=True))
@click.argument('vcfin', type=click.Path(exists=True))
@click.argument('outdir', type=click.Path())
@click.argument('sample')
@click.option('--reference-spec', type=click.Path(exists=True))
@click.option('--ploidy', type=click.Choice(PLOIDIES), default='auto',
              help='diploid or haploid ignore reference.txt and use that ploidy for every sequence')
def replay(fasta, vcfin, outdir, sample, reference_spec, ploidy):
  """Apply the genotypes of SAMPLE to the reference, writing OUTDIR/genome.fa and OUTDIR/reference.txt"""
  from kinsim.simulation.variants.replay import SampleReplayer
  SampleReplayer(load_reference(fasta, reference_spec, ploidy)).replay(vcfin, outdir, sample)


def parse_individual(text):
  name, _, sex = text.partition(':')
  sex = sex or 'either'
  if not name or sex not in SEXES:
    raise click.BadParameter('Expected NAME or NAME:SEX with SEX one of {}, got "{}"'.format(SEXES, text))
  return name, sex


def parse_founders(ctx, param, value):
  from kinsim.simulation.variants.pedsim import Founder
  return [Founder(*parse_individual(v)) for v in value]


def parse_families(ctx, param, value):
  from kinsim.simulation.variants.pedsim import Founder, Family
  return [Family(father, mother, [Founder(*parse_individual(c)) for c in children.split(',')])
          for father, mother, children in value]


@cli.command('ped-sim', short_help='Simulate a whole pedigree')
@click.argument('fasta', type=click.Path(exists=True))
@click.argument('outdir', type=click.Path())
@click.argument('seed', type=int)
@click.option('--reference-spec', type=click.Path(exists=True))
@click.option('--ploidy', type=click.Choice(PLOIDIES), default='auto',
              help='diploid or haploid ignore reference.txt and use that ploidy for every sequence')
@click.option('--founder', 'founders', multiple=True, callback=parse_founders, help='NAME:SEX, repeat for each founder')
@click.option('--family', 'families', type=(str, str, str), multiple=True, callback=parse_families,
              help='FATHER MOTHER CHILD:SEX[,CHILD:SEX...], repeat for each family in dependency order')
@click.option('--population-vcf', type=click.Path(exists=True), help='Use these population variants')
@click.option('--priors', 'priors_json', type=click.Path(exists=True), help='JSON file overriding default priors')
@click.option('--bias', type=float, default=0.0, help='Allele frequency bias, -1 (rarer) .. 1 (commoner)')
@click.option('--extra-crossovers', type=float, default=0.01, help='Probability of an extra crossover per chromosome')
@click.option('--genetic-maps', type=click.Path(exists=True), help='Directory of <sex>.<chrom>.CDF.txt genetic maps')
@click.option('--denovo', type=int, default=0, help='Expected de novo mutations per child')
@click.option('--replay', 'do_replay', is_flag=True, help='Write out the genome of every individual')
@click.option('--remove-unused', is_flag=True, help='Drop population variants that no founder carries')
def ped_sim(fasta, outdir, seed, reference_spec, ploidy, founders, families, population_vcf, priors_json, bias,
            extra_crossovers, genetic_maps, denovo, do_replay, remove_unused):
  """Simulate founders and families, writing OUTDIR/pedigree.vcf.gz"""
  from kinsim.simulation.variants.pedsim import simulate_pedigree
  from kinsim.simulation.variants.crossover import CrossoverSelector
  simulate_pedigree(
    load_reference(fasta, reference_spec, ploidy), outdir, founders, families, seed,
    priors=load_priors(priors_json), bias=bias, population_vcf=population_vcf,
    selector=CrossoverSelector(genetic_maps, extra_crossovers),
    de_novo_mutations=denovo, replay=do_replay, remove_unused=remove_unused)
