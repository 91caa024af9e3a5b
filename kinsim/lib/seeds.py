import numpy as np

SEED_MAX = (1 << 64) - 1  # Seeds are 64 bit


def check_seed(seed):
  if not 0 <= seed <= SEED_MAX:
    raise ValueError('Seed must be between 0 and {}, not {}'.format(SEED_MAX, seed))
  return seed


def make_rng(seed):
  """RandomState only takes 32 bit words, so a 64 bit seed is passed in as two"""
  seed = int(check_seed(seed))
  return np.random.RandomState([seed & 0xffffffff, seed >> 32])


def draw_seed(rng):
  """A fresh 64 bit seed from rng, for seeding the next stage"""
  return int(rng.randint(SEED_MAX, dtype=np.uint64))
