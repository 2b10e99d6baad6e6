"""
Folio - Novel Analysis
Turns a novel into a structured literary analysis by running a sequence of
LLM-backed stages over chapter chunks and samples.

Architecture:
    parser.py          - Splits a .txt novel into titled chapters
    models.py          - Books, configuration, entities, AnalysisResult
    chunking.py        - Chunks, samples, and key-chapter selection
    prompts.py         - System prompt, stage prompts, genre supplements
    stages.py          - Stage identifiers and per-mode stage lists
    executor.py        - Runs one stage prompt against one unit of content
    response_parser.py - Tolerant JSON extraction from model replies
    controller.py      - Pause / resume / stop between stages
    pipeline.py        - AnalysisService: the stage loop, resume, incremental and batched runs
    checkpoint.py      - Best-effort persistence of in-progress runs
    merge.py           - Entity merges and mode-aware merges of results
    metadata.py        - History of analyzed chapter ranges per book
    notes.py           - Markdown notes written as stages finish
"""
