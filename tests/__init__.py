"""Test package for Spice Theory.

Core tests drive the scoring state machine and card layout directly; the
smoke tests run the pygame shell headlessly using the SDL dummy drivers.
To run these tests, execute ``pytest`` from the project root.
"""
