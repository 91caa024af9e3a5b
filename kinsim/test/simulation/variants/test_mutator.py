import pytest

from kinsim.lib.seeds import make_rng
import kinsim.simulation.variants.mutator as mut


TEMPLATE = 'ACGTACGTAC'


def test_expand_spec():
  """Mutator: repeat counts"""
  assert mut.expand_spec('5I3E4D') == 'IIIIIEEEDDDD'
  assert mut.expand_spec('X') == 'X'
  assert mut.expand_spec('12=') == '=' * 12
  with pytest.raises(ValueError):
    mut.expand_spec('X3')


def test_bad_spec():
  """Mutator: unknown operations and mismatched haplotypes"""
  with pytest.raises(ValueError):
    mut.Mutator('Q')
  with pytest.raises(ValueError):
    mut.Mutator('X_XX')
  with pytest.raises(ValueError):
    mut.Mutator('X_X_X')


def test_minus():
  """Mutator: minus never returns the excluded bases"""
  rng = make_rng(1)
  for a in range(1, 5):
    for _ in range(50):
      b = mut.minus(rng, a)
      assert b != a and 1 <= b <= 4
    for b in range(1, 5):
      for _ in range(20):
        c = mut.minus(rng, a, b)
        assert c not in (a, b) and 1 <= c <= 4


def test_lengths():
  """Mutator: reference and mutated lengths"""
  m = mut.MutatorSingle('2X3I=D')
  assert m.ref_length == 4
  assert m.mut_length == 6
  assert not mut.Mutator('XX').is_indel
  assert mut.Mutator('2I').is_indel
  assert mut.Mutator('X_D').is_indel


def test_generate_single():
  """Mutator: X substitutes, D deletes, = copies"""
  rng = make_rng(3)
  seq, consumed = mut.MutatorSingle('X=D2I').generate(TEMPLATE, 2, rng)
  assert consumed == 3
  assert len(seq) == 4
  assert seq[0] != 'G'
  assert seq[1] == 'T'


def test_generate_off_end():
  """Mutator: running off the template gives nothing"""
  assert mut.MutatorSingle('3X').generate('ACG', 1, make_rng(1)) is None
  assert mut.Mutator('3X').generate('ACG', 1, make_rng(1)) is None


def test_heterozygous():
  """Mutator: Y differs from the template and from the first haplotype"""
  rng = make_rng(11)
  for _ in range(50):
    r = mut.Mutator('XX_YY').generate(TEMPLATE, 0, rng)
    assert r.ref_length == 2
    for n in range(2):
      assert r.first[n] != TEMPLATE[n]
      assert r.second[n] != TEMPLATE[n]
      assert r.second[n] != r.first[n]


def test_homozygous():
  """Mutator: a single spec gives the same allele on both haplotypes"""
  r = mut.Mutator('X').generate(TEMPLATE, 4, make_rng(2))
  assert r.first == r.second
  assert r.first != 'A'


def test_insert_differs():
  """Mutator: J inserts differ from the other haplotype"""
  rng = make_rng(5)
  for _ in range(50):
    r = mut.Mutator('I=_J=').generate(TEMPLATE, 0, rng)
    assert r.first[0] != r.second[0]
    assert r.first[1] == r.second[1] == 'A'
