"""
Shared helpers: formatting, network fingerprints, secret buffers and TLS.
"""
