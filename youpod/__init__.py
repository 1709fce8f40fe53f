"""
YouPod: turn YouTube channel feeds into a local archive and podcast feeds.

Packages:
    ledger: durable download history (tab-separated ledger file)
    ingestion: listing fetch, new-item diff and content acquisition
    feeds: RSS/iTunes feed generation from ledger entries
    storage: local and Cloudflare R2 storage backends
    config: config.yml loading
    pipeline: end-to-end orchestration and CLI
"""

__version__ = "0.1.0"
