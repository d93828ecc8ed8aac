# slabworks test suite
#
# - test_measurements / test_stage_measurements: pure arithmetic and per-stage records
# - test_*_service: engine rules against an in-memory database
# - test_routes: JSON adapter through the Flask test client
#
# Run with: python -m pytest
