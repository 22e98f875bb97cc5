"""
Tier sync: ranking sheet -> typed score rows -> tier roles -> audit thread.

- **sheet_fetcher.py**: reads the newest ``"<Label> <N>"`` tab over the Sheets API
- **row_mapping.py**: turns raw rows into ``ScoreRow`` values
- **tier_resolver.py**: the ordered, disjoint tier table
- **member_directory.py**: Discord role reads and writes
- **reconciliation.py**: the pass itself
- **audit_sink.py**: posts pass summaries to the audit thread
"""
