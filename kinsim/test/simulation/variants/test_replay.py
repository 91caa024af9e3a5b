import os

import pytest

from kinsim.lib.reference import ReferenceGenome, REFERENCE_FILE, HAPLOID, POLYPLOID
import kinsim.simulation.variants.replay as rp
import kinsim.test as kt


def sample_vcf(tmpdir, lines, fname='dad.vcf'):
  return kt.write_vcf(str(tmpdir.join(fname)), lines, samples=['dad'], sexes={'dad': 'MALE'})


def replay(tmpdir, lines):
  ref = kt.make_reference(tmpdir, spec=kt.REFTXT)
  out_dir = str(tmpdir.join('genome'))
  fasta = rp.SampleReplayer(ref).replay(sample_vcf(tmpdir, lines), out_dir, 'dad')
  return ReferenceGenome(fasta)


def test_reference_calls(tmpdir):
  """Replay: reference genotypes reproduce the reference"""
  genome = replay(tmpdir, [
    'ref1\t3\t.\tT\tA\t.\t.\t.\tGT\t0',
    'ref4\t3\t.\tT\tA\t.\t.\t.\tGT\t0|0',
    'ref4\t5\t.\tCAT\tC\t.\t.\t.\tGT\t0|0',
  ])
  assert genome.names == ['ref1', 'ref2', 'ref3', 'ref4_0', 'ref4_1']
  for name, seq in kt.REF[:3]:
    assert genome.read_all(genome.seq_id(name)) == seq.upper()
  for name in ['ref4_0', 'ref4_1']:
    assert genome.read_all(genome.seq_id(name)) == kt.REF[3][1].upper()


def test_alleles(tmpdir):
  """Replay: SNPs, deletions, insertions and spanning deletions on each copy"""
  genome = replay(tmpdir, [
    'ref1\t3\t.\tT\tA\t.\t.\t.\tGT\t1',
    'ref4\t3\t.\tT\tA\t.\t.\t.\tGT\t1|0',
    'ref4\t5\t.\tCAT\tC\t.\t.\t.\tGT\t0|1',
    'ref4\t6\t.\tA\t*,G\t.\t.\t.\tGT\t2|1',
    'ref4\t12\t.\tA\tATT\t.\t.\t.\tGT\t1|1',
  ])
  s = kt.REF[0][1].upper()
  assert genome.read_all(genome.seq_id('ref1')) == s[:2] + 'A' + s[3:]
  s = kt.REF[3][1].upper()
  assert genome.read_all(genome.seq_id('ref4_0')) == s[:2] + 'A' + s[3:5] + 'G' + s[6:11] + 'ATT' + s[12:]
  assert genome.read_all(genome.seq_id('ref4_1')) == s[:5] + s[7:11] + 'ATT' + s[12:]


def test_genome_description(tmpdir):
  """Replay: the output directory is a reference in its own right"""
  genome = replay(tmpdir, ['ref4\t3\t.\tT\tA\t.\t.\t.\tGT\t1|0'])
  assert os.path.exists(os.path.join(str(tmpdir.join('genome')), REFERENCE_FILE))
  assert os.path.exists(genome.fasta_fname + '.fai')
  s = genome.sequence('ref4_0', 'male')
  assert (s.ploidy, s.haploid_complement) == (HAPLOID, 'ref4_1')
  assert genome.sequence('ref1', 'male').haploid_complement == 'ref2'
  s = genome.sequence('ref3', 'male')
  assert (s.ploidy, s.linear) == (POLYPLOID, False)
  assert genome.sequence('ref4_1', 'female').ploidy == HAPLOID


def test_missing_allele(tmpdir):
  """Replay: missing alleles leave the reference in place"""
  genome = replay(tmpdir, ['ref4\t3\t.\tT\tA\t.\t.\t.\tGT\t.|1'])
  s = kt.REF[3][1].upper()
  assert genome.read_all(genome.seq_id('ref4_0')) == s
  assert genome.read_all(genome.seq_id('ref4_1')) == s[:2] + 'A' + s[3:]


@pytest.mark.parametrize('lines', [
  ['ref4\t3\t.\tT\tA\t.\t.\t.\tGT\t1'],  # Wrong arity
  ['ref4\t3\t.\tT\t<DEL>\t.\t.\t.\tGT\t1|1'],  # Symbolic
  ['ref4\t5\t.\tCAT\tC\t.\t.\t.\tGT\t1|1', 'ref4\t6\t.\tA\tG\t.\t.\t.\tGT\t1|1'],  # Overlapping alts
  ['ref4\t5\t.\tCAT\tC\t.\t.\t.\tGT\t1|1', 'ref4\t6\t.\tA\tG\t.\t.\t.\tGT\t0|0'],  # Ref inside a deletion
  ['ref4\t6\t.\tA\t*\t.\t.\t.\tGT\t1|1'],  # Uncovered spanning deletion
])
def test_errors(tmpdir, lines):
  """Replay: genotypes we can not apply"""
  with pytest.raises(ValueError):
    replay(tmpdir, lines)


def test_unknown_sample(tmpdir):
  """Replay: the sample must be in the VCF"""
  ref = kt.make_reference(tmpdir)
  with pytest.raises(ValueError):
    rp.SampleReplayer(ref).replay(
      sample_vcf(tmpdir, ['ref1\t3\t.\tT\tA\t.\t.\t.\tGT\t1|1']), str(tmpdir.join('out')), 'mom')


def test_derive_name():
  """Replay: split sequence names"""
  assert rp.derive_name('chr1', 0, 2) == 'chr1_0'
  assert rp.derive_name('chr1', 1, 2) == 'chr1_1'
  assert rp.derive_name('chrX', 0, 1) == 'chrX'
