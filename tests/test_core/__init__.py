"""
Core algorithm tests for the Adaptive Syntax Filter.

Tests for Phase 1 components:
- Kalman filtering and smoothing
- EM algorithm implementation
- State space management
- Softmax operations
""" 
