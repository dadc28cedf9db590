"""Command-line entry points for offline work on the index.

See run_sync.py for one-shot syncs of the configured sources and inspect_pdf.py for
checking whether a PDF has a usable text layer.
"""
