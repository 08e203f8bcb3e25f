"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the settlement engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_exactly_once.py - Every active participant matched once per pass
2. test_conservation.py - Bucket sum equals total intake after every operation
3. test_resumability.py - Batch boundaries never change the result
4. test_determinism.py - Ranking independent of traversal order
5. test_idempotency.py - Duplicate ledger intents applied once

These tests use hypothesis for property-based testing.
"""
