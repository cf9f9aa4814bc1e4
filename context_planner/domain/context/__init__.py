# This module handles per-turn context assembly

# +---------------------+
# |   Memory service    |   (External, long-term, owned elsewhere)
# |---------------------|
# | Stored facts        |
# | Narrative synthesis |
# | Ingested transcripts|
# +---------------------+

# +---------------------+
# |   Session cache     |   (Per session, cross-turn, best effort)
# |---------------------|
# | Last synthesis      |
# | Last recall / count |
# | Last ingest         |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |        Turn context          |   (Built fresh for every message)
# |------------------------------|
# | Plan (tools, think level)    |
# | Recalled facts, time-boxed   |
# | Cached synthesis if fresh    |
# +------------------------------+
#         |
#         v
#   [generation step]  -->  [ingestion, detached]
