 # This module handles what the decision step gets to see

# +---------------------------+
# |      Ledger memory        |   (Permanent, hash-chained, anchored)
# |---------------------------|
# | Signed experience records |
# | Local record cache        |
# | Similarity index          |
# +---------------------------+

# +---------------------------+
# |      Run history          |   (One workflow run, bounded)
# |---------------------------|
# | Initial instructions      |
# | Running summary           |
# | Decisions, tool results   |
# +---------------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |        Context window        |   (Assembled per decision step)
# |------------------------------|
# | First message, always kept   |
# | Summary of everything after  |
# | Recent messages up to cap    |
# +------------------------------+
#         |
#         v
#   [decision / tool call]
