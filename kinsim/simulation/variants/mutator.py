"""Apply a compact mutation description to a stretch of reference.

A mutation spec is a string of operations, each optionally preceded by a repeat count, e.g. 5I3E4D.

  X  substitute a base different from the template
  Y  substitute a base different from the template and from the other haplotype
  I  insert a random base
  J  insert a base different from the other haplotype
  D  delete a template base
  =  copy a template base (E is a synonym)

'A_B' describes a heterozygous mutation with haplotype A and haplotype B, a single spec is homozygous.
"""
from collections import namedtuple

BASES = 'NACGT'  # base ordinals: N = 0, A = 1 ...

MutatorResult = namedtuple('MutatorResult', ['ref_length', 'first', 'second'])


def expand_spec(spec):
  """'5I3E4D' -> 'IIIIIEEEDDDD'"""
  out, count = [], 0
  for c in spec:
    if c.isdigit():
      count = count * 10 + int(c)
    else:
      out.append(c * (count or 1))
      count = 0
  if count != 0:
    raise ValueError(spec)
  return ''.join(out)


def minus(rng, a, b=None):
  """A random base ordinal, guaranteed different from a (and b, if given)

  :param rng: np.random.RandomState
  :param a: base ordinal
  :param b: base ordinal
  :return: base ordinal
  """
  if b is None or a == b:
    ra = rng.randint(3) + 1
    return ra + (ra >= a)
  if a > b:
    a, b = b, a
  ra = rng.randint(2) + 1
  sa = ra + (ra >= a)
  return sa + (sa >= b)


def random_base(rng):
  return rng.randint(4) + 1


class MutatorSingle(object):
  __slots__ = ('spec', 'ref_length', 'mut_length')

  def __init__(self, spec):
    self.spec = expand_spec(spec)
    t, r = 0, 0
    for c in self.spec:
      if c in 'XY=E':
        t += 1
        r += 1
      elif c in 'IJ':
        r += 1
      elif c == 'D':
        t += 1
      else:
        raise ValueError(self.spec)
    self.ref_length = t
    self.mut_length = r

  def generate(self, template, position, rng, other=None):
    """Mutate the template starting at position.

    :param template: sequence string (upper case ACGTN)
    :param position: 0-based position in template the mutation starts at
    :param rng: np.random.RandomState
    :param other: the other haplotype's mutated bases, used by Y and J
    :return: (mutated sequence, reference bases consumed) or None if we ran off the end of the template
    """
    result = []
    t = position
    for c in self.spec:
      r = len(result)
      if c in 'XY=E' and t >= len(template):
        return None
      if c == 'X':
        result.append(BASES[minus(rng, BASES.index(template[t]))])
        t += 1
      elif c == 'Y':
        b = BASES.index(template[t])
        if other is None or r >= len(other):
          result.append(BASES[minus(rng, b)])
        else:
          result.append(BASES[minus(rng, b, BASES.index(other[r]))])
        t += 1
      elif c == 'I':
        result.append(BASES[random_base(rng)])
      elif c == 'J':
        if other is None or r >= len(other):
          result.append(BASES[random_base(rng)])
        else:
          result.append(BASES[minus(rng, BASES.index(other[r]))])
      elif c == 'D':
        t += 1
      else:  # = or E
        result.append(template[t])
        t += 1
    return ''.join(result), t - position

  def __repr__(self):
    return self.spec


class Mutator(object):
  """Homozygous (single spec) or heterozygous (spec_spec) mutation"""

  def __init__(self, spec):
    parts = spec.split('_')
    if len(parts) > 2:
      raise ValueError('At most two haplotypes can be specified: {}'.format(spec))
    self.spec = spec
    self.first = MutatorSingle(parts[0])
    self.second = MutatorSingle(parts[1]) if len(parts) == 2 else None
    if self.second is not None and self.second.ref_length != self.first.ref_length:
      raise ValueError('Both haplotypes of {} must cover the same reference length'.format(spec))

  @property
  def ref_length(self):
    return self.first.ref_length

  @property
  def is_indel(self):
    return any(m is not None and m.ref_length != m.mut_length for m in (self.first, self.second))

  def generate(self, template, position, rng):
    """

    :param template: sequence string
    :param position: start of mutation in template
    :param rng: np.random.RandomState
    :return: MutatorResult or None if the template is too short
    """
    a = self.first.generate(template, position, rng)
    if a is None:
      return None
    if self.second is None:
      return MutatorResult(a[1], a[0], a[0])
    b = self.second.generate(template, position, rng, other=a[0])
    if b is None:
      return None
    return MutatorResult(a[1], a[0], b[0])

  def __repr__(self):
    return self.spec
