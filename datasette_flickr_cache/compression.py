import json
import zstandard

compressor = zstandard.ZstdCompressor(level=9)
decompressor = zstandard.ZstdDecompressor()

def pack(value):
    return compressor.compress(json.dumps(value, separators=(',', ':')).encode('utf-8'))

def unpack(blob):
    return json.loads(decompressor.decompress(blob).decode('utf-8'))
