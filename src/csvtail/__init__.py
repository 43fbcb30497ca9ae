"""csvtail — incremental CSV file watcher.

Tails growing or rotating CSV files written by an uncontrolled producer and
hands every newly available row to a caller-supplied handler.  Two strategies:

- append watch: follow one file by byte offset, surviving truncation and
  replacement (log rotation);
- directory watch: pick the newest ``<prefix>*.csv`` in a directory and
  re-ingest it whenever it changes.
"""

__version__ = "0.1.0"
