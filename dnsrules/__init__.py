"""
dnsrules package - DNS Blocking Rule Aggregator

Modules:
    models: Canonical rule model (dialects, kinds, records, canonical set)
    errors: Warning/error taxonomy and the Diagnostics accumulator
    parsers: One parser per rule dialect
    compiler: Merge, allowlist filtering and deduplication
    extractor: Domain list and domain-set views
    emitters: Text serializers for the artifacts
    config: Run configuration and sources-file loading
    downloader: Async source downloader with ETag/Last-Modified caching
    pipeline: Main processing pipeline and CLI
"""

__version__ = "1.0.0"
