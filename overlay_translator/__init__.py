"""Overlay Translator — timed recognition fragments to translated display units.

WHY: Recognition engines (OCR on sampled video frames, speech-to-text on
audio windows) emit noisy, irregularly spaced text fragments. A player
overlay needs coherent phrases, a timeline it can query on every rendered
frame, and each unique string translated exactly once. This package is the
core between the recognition engine and the overlay renderer.

HOW: Three-stage pipeline — segment (core.segmenter turns fragment chunks
into phrases), store (core.timeline keeps display units sorted for
O(log n) lookup), translate (translation.dispatcher deduplicates text,
calls a backend once per unique string and fans results back out through
the store). pipeline.SessionPipeline drives the three per chunk.

RULES:
- The IR dataclasses in core.ir are the contract between the stages
- Recognition and translation engines are external collaborators behind
  the RecognitionSource and TranslationBackend interfaces
- One cancellation flag is shared top-down per processing session
"""

__version__ = "0.1.0"
