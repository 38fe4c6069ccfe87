"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the remediation tool.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conversion.py - Exact fixed-point token/planck conversion
2. atomicity.py - All-or-nothing remediation batches
3. determinism.py - Reproducible patches and audits

These tests use hypothesis for property-based testing.
"""
