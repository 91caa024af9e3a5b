"""Small helpers for sampling from discrete distributions given as cumulative tables"""
import numpy as np


def cumulative_distribution(weights):
  """Normalized cumulative sum of weights. All zero weights give an all zero table (nothing is choosable)

  :param weights: list of non-negative numbers
  :return: numpy array, last element 1.0 unless all weights are zero
  """
  w = np.asarray(weights, dtype=float)
  total = w.sum()
  if total <= 0:
    return np.zeros(w.shape[0])
  cdf = np.cumsum(w) / total
  cdf[-1] = 1.0
  return cdf


def choose_from_cumulative(cdf, r):
  """Index of the first bin whose cumulative value exceeds r.

  :param cdf: cumulative table
  :param r: uniform draw in [0, 1)
  :return: index into cdf. Returns len(cdf) if r lies beyond the table (e.g. an all zero table)
  """
  return int(np.searchsorted(cdf, r, side='right'))
