"""
Test suite for the VoiceBench speech benchmarking backend

This package contains unit tests for the engine and its metrics:
- test_renderer.py / test_paths.py: placeholder rendering and response path extraction
- test_registry.py: built-in and user template management
- test_request_builder.py / test_audio_codec.py / test_executor.py: vendor calls
- test_orchestrator.py: batch jobs, ordering, pause and progress
- test_vendor_service.py / test_storage.py / test_pricing.py: vendors, audio files and cost
- test_wer.py / test_rtf.py / test_audio_utils.py: quality and timing metrics
"""
