"""
Interface package: the UCI line protocol, from both ends.

Modules:
    protocol: UCI command strings and the pure line parser
    channel : Child-process line channel and engine discovery
    gateway : Single-flight request/response gateway to an external engine
    uci     : UCI front-end for the built-in search engine.
              Can be run as a standalone process: python -m interface.uci
"""
