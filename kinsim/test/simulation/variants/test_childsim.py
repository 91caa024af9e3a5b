import logging

import pytest

from kinsim.lib.seeds import make_rng
import kinsim.lib.vcfio as vio
import kinsim.simulation.variants.childsim as cs
from kinsim.simulation.variants.crossover import CrossoverSelector
import kinsim.test as kt


POSITIONS = range(10, 120, 10)


def parents_vcf(tmpdir, with_gt=True):
  """dad is haploid on ref1 and ref2, mom has no ref2, ref3 is passed down as one unit"""
  lines = \
    ['ref1\t{}\t.\tA\tC,G\t.\t.\t.\tGT\t1\t0|2'.format(p) for p in POSITIONS] + \
    ['ref2\t{}\t.\tA\tC\t.\t.\t.\tGT\t1\t.'.format(p) for p in POSITIONS] + \
    ['ref3\t{}\t.\tA\tC\t.\t.\t.\tGT\t0\t1'.format(p) for p in POSITIONS] + \
    ['ref4\t{}\t.\tT\tA,C,G\t.\t.\t.\tGT\t0|1\t2|3'.format(p) for p in POSITIONS]
  if not with_gt:
    lines = ['\t'.join(l.split('\t')[:8]) for l in lines]
  return kt.write_vcf(str(tmpdir.join('parents.vcf')), lines,
                      samples=['dad', 'mom'] if with_gt else [], sexes={'dad': 'MALE', 'mom': 'FEMALE'})


def child_gts(fname, child):
  header, records = vio.read_vcf(fname)
  idx = header.sample_index(child)
  return {name: [r.get_format(vio.GT, idx) for r in recs] for name, recs in records.items()}


def switches(alleles):
  return sum(a != b for a, b in zip(alleles[:-1], alleles[1:]))


def test_check_ploidy():
  """Child: impossible ploidy combinations"""
  cs.check_ploidy('s', 1, 2, 2)
  cs.check_ploidy('s', 1, 0, 1)
  cs.check_ploidy('s', 1, 0, 0)
  with pytest.raises(ValueError):
    cs.check_ploidy('s', 0, 0, 1)
  with pytest.raises(ValueError):
    cs.check_ploidy('s', 1, 0, 2)
  with pytest.raises(ValueError):
    cs.check_ploidy('s', 3, 2, 2)


def test_haplotype():
  """Child: haplotype pointers cycle through the copies"""
  h = cs.Haplotype(0, 2)
  assert h.advance() == cs.Haplotype(1, 2)
  assert h.advance().advance() == h


def test_advance_haplotype():
  """Child: obligatory crossovers switch copies once they are passed"""
  rng = make_rng(1)
  h = cs.Haplotype(0, 2)
  assert cs.advance_haplotype(h, 50, 40, 49, 0.0, rng) == (h, False)
  assert cs.advance_haplotype(h, 50, 40, 50, 0.0, rng) == (cs.Haplotype(1, 2), True)
  assert cs.advance_haplotype(h, 50, 50, 60, 0.0, rng) == (h, False)
  assert cs.advance_haplotype(h, 70, 40, 60, 1.0, rng) == (cs.Haplotype(1, 2), True)

  # Single copies do not consume random numbers
  rng1, rng2 = make_rng(3), make_rng(3)
  assert cs.advance_haplotype(cs.Haplotype(0, 1), 50, 40, 60, 1.0, rng1) == (cs.Haplotype(0, 1), False)
  assert rng1.rand() == rng2.rand()


def test_daughter(tmpdir):
  """Child: a daughter gets dad's only X and one of mom's"""
  ref = kt.make_reference(tmpdir, spec=kt.REFTXT)
  vcf_out = str(tmpdir.join('kid.vcf'))
  stats = cs.ChildSampleSimulator(ref, 7).simulate(
    parents_vcf(tmpdir), vcf_out, [cs.ChildSpec('dad', 'mom', 'kid', 'female')])
  gts = child_gts(vcf_out, 'kid')
  for gt in gts['ref1']:
    a = vio.split_gt(gt)
    assert a[0] == 1 and a[1] in (0, 2), gt
  assert gts['ref2'] == ['.'] * len(POSITIONS)
  assert gts['ref3'] == ['1'] * len(POSITIONS)
  assert stats['kid']['father'] <= 1


def test_son(tmpdir):
  """Child: a son gets his X from mom and his Y from dad"""
  ref = kt.make_reference(tmpdir, spec=kt.REFTXT)
  vcf_out = str(tmpdir.join('kid.vcf'))
  cs.ChildSampleSimulator(ref, 7).simulate(parents_vcf(tmpdir), vcf_out, [cs.ChildSpec('dad', 'mom', 'kid', 'male')])
  gts = child_gts(vcf_out, 'kid')
  assert all(gt in ('0', '2') for gt in gts['ref1']), gts['ref1']
  assert gts['ref2'] == ['1'] * len(POSITIONS)
  assert gts['ref3'] == ['1'] * len(POSITIONS)
  header, _ = vio.read_vcf(vcf_out)
  assert header.sexes()['kid'] == 'MALE'
  assert '##PEDIGREE=<ID=kid,Child=kid,Mother=mom,Father=dad>' in header.meta


def test_mendelian(tmpdir):
  """Child: one allele from each parent, switching copies at most once without extra crossovers"""
  ref = kt.make_reference(tmpdir, spec=kt.REFTXT)
  vcf_out = str(tmpdir.join('kids.vcf'))
  children = [cs.ChildSpec('dad', 'mom', 'kid{}'.format(n), 'female') for n in range(5)]
  stats = cs.ChildSampleSimulator(ref, 3, CrossoverSelector(extra_crossover_frequency=0.0)).simulate(
    parents_vcf(tmpdir), vcf_out, children)
  assert sorted(stats.keys()) == ['kid{}'.format(n) for n in range(5)]
  for c in children:
    alleles = [vio.split_gt(gt) for gt in child_gts(vcf_out, c.child)['ref4']]
    assert all(a[0] in (0, 1) and a[1] in (2, 3) for a in alleles), alleles
    assert switches([a[0] for a in alleles]) <= 1
    assert switches([a[1] for a in alleles]) <= 1


def test_reproducible(tmpdir):
  """Child: the same seed gives the same child"""
  ref = kt.make_reference(tmpdir, spec=kt.REFTXT)
  vcf_in = parents_vcf(tmpdir)
  out = []
  for n in range(2):
    vcf_out = str(tmpdir.join('kid{}.vcf'.format(n)))
    cs.ChildSampleSimulator(ref, 11, CrossoverSelector(extra_crossover_frequency=1.0)).simulate(
      vcf_in, vcf_out, [cs.ChildSpec('dad', 'mom', 'kid', 'female')])
    out.append(child_gts(vcf_out, 'kid'))
  assert out[0] == out[1]


def test_errors(tmpdir):
  """Child: missing genotypes, parents, or mismatched genotype arity"""
  ref = kt.make_reference(tmpdir, spec=kt.REFTXT)
  vcf_out = str(tmpdir.join('kid.vcf'))
  with pytest.raises(ValueError):
    cs.ChildSampleSimulator(ref, 1).simulate(
      parents_vcf(tmpdir, with_gt=False), vcf_out, [cs.ChildSpec('dad', 'mom', 'kid', 'female')])
  with pytest.raises(ValueError):
    cs.ChildSampleSimulator(ref, 1).simulate(
      parents_vcf(tmpdir), vcf_out, [cs.ChildSpec('stranger', 'mom', 'kid', 'female')])

  # Without reference.txt dad's ref1 genotype should be diploid
  ref = kt.make_reference(tmpdir.mkdir('plain'))
  with pytest.raises(ValueError):
    cs.ChildSampleSimulator(ref, 1).simulate(
      parents_vcf(tmpdir), vcf_out, [cs.ChildSpec('dad', 'mom', 'kid', 'female')])


def test_parent_gt_missing():
  """Child: a parent genotype of '.' reads as reference whatever the parent's copy count"""
  rec = vio.VcfRecord('ref2', 10, 'A', ['C'])
  rec.add_sample({vio.GT: '.'})
  rec.add_sample({vio.GT: '1'})
  assert cs.parent_gt(rec, 0, 1, 'dad') == [0]
  assert cs.parent_gt(rec, 0, 2, 'dad') == [0, 0]
  assert cs.parent_gt(rec, 0, 0, 'dad') == []
  assert cs.parent_gt(rec, 1, 1, 'mom') == [1]


def test_son_missing_father_gt(tmpdir):
  """Child: a son inherits reference on Y where dad's genotype is '.'"""
  ref = kt.make_reference(tmpdir, spec=kt.REFTXT)
  vcf_in = kt.write_vcf(str(tmpdir.join('parents.vcf')),
                        ['ref2\t{}\t.\tA\tC\t.\t.\t.\tGT\t.\t.'.format(p) for p in POSITIONS],
                        samples=['dad', 'mom'], sexes={'dad': 'MALE', 'mom': 'FEMALE'})
  vcf_out = str(tmpdir.join('kid.vcf'))
  cs.ChildSampleSimulator(ref, 7).simulate(vcf_in, vcf_out, [cs.ChildSpec('dad', 'mom', 'kid', 'male')])
  assert child_gts(vcf_out, 'kid')['ref2'] == ['0'] * len(POSITIONS)


def test_out_of_order(tmpdir, caplog):
  """Child: out of order records are warned about once and still get valid genotypes"""
  caplog.set_level(logging.WARNING)
  ref = kt.make_reference(tmpdir, spec=kt.REFTXT)
  positions = [50, 30, 20, 70, 60, 90]
  vcf_in = kt.write_vcf(str(tmpdir.join('parents.vcf')),
                        ['ref4\t{}\t.\tT\tA,C,G\t.\t.\t.\tGT\t0|1\t2|3'.format(p) for p in positions],
                        samples=['dad', 'mom'], sexes={'dad': 'MALE', 'mom': 'FEMALE'})
  vcf_out = str(tmpdir.join('kid.vcf'))
  sim = cs.ChildSampleSimulator(ref, 3, CrossoverSelector(extra_crossover_frequency=1.0))
  sim.simulate(vcf_in, vcf_out, [cs.ChildSpec('dad', 'mom', 'kid', 'female')])
  assert sim.warned_out_of_order
  warnings = [r for r in caplog.records if 'Out of order VCF records' in r.getMessage()]
  assert len(warnings) == 1
  assert warnings[0].levelno == logging.WARNING
  _, records = vio.read_vcf(vcf_out)
  assert [r.pos for r in records['ref4']] == positions
  alleles = [vio.split_gt(r.get_format(vio.GT, 2)) for r in records['ref4']]
  assert all(a[0] in (0, 1) and a[1] in (2, 3) for a in alleles), alleles
