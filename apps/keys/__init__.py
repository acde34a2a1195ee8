"""Keys app package.

Tracks custody of the physical keys that open bookable resources: who
holds a key, for which booking, and whether it came back on time. At most
one open custody transaction exists per key.
"""
