import numpy as np


DEFAULT_POWER = 0.75
DEFAULT_XMAX = 100.0


class StandardWeighter:
  '''piecewise weighting function from equation 9 of the GloVe paper

  weight(x) = (x/xmax)^power if x <= xmax, else 1
  '''

  tag = 'standard'

  def __init__(self, power=DEFAULT_POWER, xmax=DEFAULT_XMAX):
    '''
    Args:
      power: exponent ('alpha' in the paper); 0 selects DEFAULT_POWER
      xmax: count at which the weight saturates to 1; 0 selects DEFAULT_XMAX
    '''

    self.power = float(power) or DEFAULT_POWER
    self.xmax = float(xmax) or DEFAULT_XMAX
    assert self.xmax > 0.0, "xmax must be positive"

  def __eq__(self, other):

    return isinstance(other, StandardWeighter) and (self.power, self.xmax) == (other.power, other.xmax)

  def __repr__(self):

    return 'StandardWeighter(power=%r, xmax=%r)' % (self.power, self.xmax)

  def params(self):

    return [self.power, self.xmax]

  def weight(self, x):

    if x > self.xmax:
      return 1.0
    return (x / self.xmax) ** self.power

  def weights(self, counts):
    '''vectorized weight over an array of co-occurrence counts'''

    data = np.asarray(counts, dtype=np.float64) / self.xmax
    mask = data < 1.0
    data[mask] **= self.power
    data[~mask] = 1.0
    return data


class UnitWeighter:
  '''weights every co-occurrence equally'''

  tag = 'unit'

  def __eq__(self, other):

    return isinstance(other, UnitWeighter)

  def __repr__(self):

    return 'UnitWeighter()'

  def params(self):

    return []

  def weight(self, x):

    return 1.0

  def weights(self, counts):

    return np.ones(np.shape(counts), dtype=np.float64)


def make_weighter(tag, params=()):
  '''reconstructs a weighter from its type tag and parameters
  Args:
    tag: 'standard' or 'unit'
    params: parameters as returned by the weighter's params()
  Returns:
    weighter
  '''

  if tag == StandardWeighter.tag:
    return StandardWeighter(*params)
  if tag == UnitWeighter.tag:
    assert not params, "UnitWeighter takes no parameters"
    return UnitWeighter()
  raise(NotImplementedError)
