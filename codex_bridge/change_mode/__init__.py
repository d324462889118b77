"""Change-mode pipeline.

Keep package import side-effects minimal; import concrete submodules
(parser, validator, chunker, chunk_cache, formatter, orchestrator) directly.
"""
