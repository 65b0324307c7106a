"""Media stream relay: decoding, upstream speech clients, filtering and fan-out"""
