"""
Core application engine for orchestrating the download process.

The `DownloadOrchestrator` resolves each request, keeps the peer cache and the
HTTP connection alive between requests, and hands the transfer to the engine.
"""
