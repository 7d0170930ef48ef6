# This module handles Context storage and retrieval

# +---------------------+        +---------------------+
# |   Document store    |        |    Vector index     |
# |---------------------|        |---------------------|
# | Contexts (truth)    | -----> | Embedding + payload |
# | Version history     |  sync  | (derived, may lag)  |
# | Feedback log        |        |                     |
# +---------------------+        +---------------------+
#            \                          /
#             \                        /
#              v                      v
# +------------------------------------------+
# |             Context Retriever            |
# |------------------------------------------|
# | workspace -> hybrid -> global tiers      |
# | hydrate, re-rank, diversity selection    |
# +------------------------------------------+
#         |
#         v
#   [Synthesizer -> Prompt Injector -> LLM]
