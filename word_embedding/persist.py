'''tagged, length-prefixed record format for co-occurrence matrices and trainers

Each record is a one byte type tag, an unsigned 64-bit little-endian payload
length and the payload. Composite records (sparse vectors, sparse matrices,
weighters, trainers) hold a fixed sequence of nested records. A file is the
magic header followed by a single top-level record.
'''

import struct
import numpy as np
from word_embedding.sparse import SparseMatrix
from word_embedding.sparse import SparseVector
from word_embedding.weighting import make_weighter


MAGIC = b'WEMB'
HEADER = struct.Struct('<cQ')
INT = struct.Struct('<q')
FLOAT = struct.Struct('<d')
SHAPE = struct.Struct('<B')

INTTAG = b'i'
FLOATTAG = b'f'
STRTAG = b's'
ARRAYTAG = b'a'
VECTORTAG = b'V'
MATRIXTAG = b'M'
WEIGHTERTAG = b'W'
TRAINERTAG = b'T'


class SerializationError(ValueError):
  pass


def record(tag, payload):

  return HEADER.pack(tag, len(payload)) + payload


def encode_int(value):

  return record(INTTAG, INT.pack(int(value)))


def encode_float(value):

  return record(FLOATTAG, FLOAT.pack(float(value)))


def encode_str(value):

  return record(STRTAG, value.encode('utf-8'))


def encode_array(array):

  array = np.asarray(array)
  dtype = array.dtype.newbyteorder('<') if array.dtype.byteorder == '>' else array.dtype
  name = dtype.str.encode('ascii')
  payload = [SHAPE.pack(len(name)), name, SHAPE.pack(array.ndim)]
  payload.extend(INT.pack(dim) for dim in array.shape)
  payload.append(np.ascontiguousarray(array, dtype=dtype).tobytes())
  return record(ARRAYTAG, b''.join(payload))


def encode_vector(vector):

  payload = encode_int(vector.length) + encode_array(np.array(vector.indices, dtype=np.int64)) + encode_array(np.array(vector.values, dtype=np.float64))
  return record(VECTORTAG, payload)


def encode_matrix(matrix):

  return record(MATRIXTAG, encode_int(len(matrix.rows)) + b''.join(encode_vector(row) for row in matrix.rows))


def encode_weighter(weighter):

  return record(WEIGHTERTAG, encode_str(weighter.tag) + b''.join(encode_float(param) for param in weighter.params()))


class Reader:
  '''reads a sequence of records, reporting failures with the object and field being decoded
  '''

  def __init__(self, data, what):

    self.data = memoryview(data)
    self.pos = 0
    self.what = what

  def error(self, field, msg):

    return SerializationError('deserialize '+self.what+': field '+repr(field)+': '+msg)

  def done(self):

    return self.pos == len(self.data)

  def finish(self):

    if not self.done():
      raise SerializationError('deserialize '+self.what+': '+str(len(self.data)-self.pos)+' trailing bytes')

  def read(self, tag, field):
    '''returns the payload of the next record, which must have the given tag'''

    if len(self.data) - self.pos < HEADER.size:
      raise self.error(field, 'truncated record header')
    found, length = HEADER.unpack_from(self.data, self.pos)
    if found != tag:
      raise self.error(field, 'expected record '+repr(tag.decode())+' but found '+repr(found.decode('ascii', 'replace')))
    start = self.pos + HEADER.size
    if len(self.data) - start < length:
      raise self.error(field, 'truncated record (need '+str(length)+' bytes, have '+str(len(self.data)-start)+')')
    self.pos = start + length
    return self.data[start:self.pos]

  def decode(self, tag, field, decoder):

    payload = self.read(tag, field)
    try:
      return decoder(payload)
    except SerializationError as e:
      raise self.error(field, str(e)) from e

  def read_int(self, field):

    payload = self.read(INTTAG, field)
    if len(payload) != INT.size:
      raise self.error(field, 'bad integer size '+str(len(payload)))
    return INT.unpack(payload)[0]

  def read_float(self, field):

    payload = self.read(FLOATTAG, field)
    if len(payload) != FLOAT.size:
      raise self.error(field, 'bad float size '+str(len(payload)))
    return FLOAT.unpack(payload)[0]

  def read_str(self, field):

    payload = self.read(STRTAG, field)
    try:
      return bytes(payload).decode('utf-8')
    except UnicodeDecodeError as e:
      raise self.error(field, str(e)) from e

  def read_array(self, field, shape=None):

    array = self.decode(ARRAYTAG, field, decode_array)
    if not shape is None and array.shape != tuple(shape):
      raise self.error(field, 'expected shape '+str(tuple(shape))+' but found '+str(array.shape))
    return array


def decode_array(payload):

  data = bytes(payload)
  try:
    pos = 0
    (n,) = SHAPE.unpack_from(data, pos)
    pos += SHAPE.size
    dtype = np.dtype(data[pos:pos+n].decode('ascii'))
    pos += n
    (ndim,) = SHAPE.unpack_from(data, pos)
    pos += SHAPE.size
    shape = struct.unpack_from('<'+str(ndim)+'q', data, pos)
    pos += INT.size*ndim
  except (struct.error, TypeError, ValueError, UnicodeDecodeError) as e:
    raise SerializationError('deserialize array: bad header: '+str(e)) from e
  if dtype.hasobject:
    raise SerializationError('deserialize array: object arrays are not supported')
  if any(dim < 0 for dim in shape):
    raise SerializationError('deserialize array: negative dimension in shape '+str(shape))
  nbytes = int(np.prod(shape, dtype=np.int64)) * dtype.itemsize
  if len(data) - pos != nbytes:
    raise SerializationError('deserialize array: expected '+str(nbytes)+' data bytes but found '+str(len(data)-pos))
  return np.frombuffer(data, dtype=dtype, offset=pos, count=nbytes//dtype.itemsize).reshape(shape).copy()


def decode_vector(payload):

  reader = Reader(payload, 'SparseVector')
  length = reader.read_int('length')
  indices = reader.read_array('indices')
  values = reader.read_array('values', indices.shape)
  reader.finish()
  if indices.ndim != 1:
    raise reader.error('indices', 'expected a 1-d array')
  if indices.dtype.kind not in 'iu':
    raise reader.error('indices', 'expected integer indices but found dtype '+str(indices.dtype))
  if values.dtype.kind != 'f':
    raise reader.error('values', 'expected float values but found dtype '+str(values.dtype))
  if len(indices) and (indices[0] < 0 or indices[-1] >= length or np.any(np.diff(indices) <= 0)):
    raise reader.error('indices', 'indices must be strictly increasing and within [0, '+str(length)+')')
  return SparseVector(length, indices.tolist(), values.tolist())


def decode_matrix(payload):

  reader = Reader(payload, 'SparseMatrix')
  nrows = reader.read_int('rows')
  rows = [reader.decode(VECTORTAG, 'row '+str(i), decode_vector) for i in range(nrows)]
  reader.finish()
  lengths = {row.length for row in rows}
  if len(lengths) > 1:
    raise reader.error('rows', 'rows have different lengths '+str(sorted(lengths)))
  return SparseMatrix(rows) if rows else SparseMatrix(0)


def decode_weighter(payload):

  reader = Reader(payload, 'Weighter')
  tag = reader.read_str('type')
  params = []
  while not reader.done():
    params.append(reader.read_float('param '+str(len(params))))
  try:
    return make_weighter(tag, params)
  except NotImplementedError:
    raise reader.error('type', 'unknown weighter type '+repr(tag)) from None
  except (AssertionError, TypeError) as e:
    raise reader.error('params', 'bad parameters '+str(params)+' for weighter '+repr(tag)) from e


ENCODERS = [(SparseVector, encode_vector), (SparseMatrix, encode_matrix)]
DECODERS = {VECTORTAG: ('SparseVector', decode_vector), MATRIXTAG: ('SparseMatrix', decode_matrix), WEIGHTERTAG: ('Weighter', decode_weighter)}


def dumps(obj):
  '''serializes a SparseVector, SparseMatrix or weighter
  Args:
    obj: object to serialize
  Returns:
    bytes
  '''

  for cls, encoder in ENCODERS:
    if isinstance(obj, cls):
      return MAGIC + encoder(obj)
  if hasattr(obj, 'tag') and hasattr(obj, 'params'):
    return MAGIC + encode_weighter(obj)
  raise(NotImplementedError)


def loads(data, tag=None):
  '''deserializes an object written by dumps
  Args:
    data: bytes
    tag: record tag the object must have; if None any known tag is accepted
  Returns:
    decoded object
  '''

  data = memoryview(data)
  if bytes(data[:len(MAGIC)]) != MAGIC:
    raise SerializationError('deserialize: missing header')
  if len(data) < len(MAGIC) + HEADER.size:
    raise SerializationError('deserialize: truncated record header')
  found = bytes(data[len(MAGIC):len(MAGIC)+1])
  if not tag is None and found != tag:
    raise SerializationError('deserialize: expected record '+repr(tag.decode())+' but found '+repr(found.decode('ascii', 'replace')))
  if not found in DECODERS:
    raise SerializationError('deserialize: unknown record '+repr(found.decode('ascii', 'replace')))
  what, decoder = DECODERS[found]
  return unwrap(data, found, what, decoder)


def unwrap(data, tag, what, decoder):
  '''decodes the single top-level record of a file
  Args:
    data: file contents, starting with the magic header
    tag: expected record tag
    what: name of the object for error messages
    decoder: function mapping the record payload to the object
  Returns:
    decoded object
  '''

  data = memoryview(data)
  if bytes(data[:len(MAGIC)]) != MAGIC:
    raise SerializationError('deserialize '+what+': missing header')
  reader = Reader(data[len(MAGIC):], 'file')
  obj = reader.decode(tag, what, decoder)
  reader.finish()
  return obj


def write_file(f, data):

  if type(f) == str:
    with open(f, 'wb') as g:
      g.write(data)
  else:
    f.write(data)


def read_file(f):

  if type(f) == str:
    with open(f, 'rb') as g:
      return g.read()
  return f.read()


def dump(obj, f):
  '''writes an object to a file
  Args:
    obj: SparseVector, SparseMatrix or weighter
    f: open binary file object or filename string
  Returns:
    None
  '''

  write_file(f, dumps(obj))


def load(f, tag=None):
  '''reads an object written by dump
  Args:
    f: open binary file object or filename string
    tag: record tag the object must have; if None any known tag is accepted
  Returns:
    decoded object
  '''

  return loads(read_file(f), tag=tag)
