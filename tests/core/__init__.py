"""Tests for scpfilter core.

This package contains tests for:
- ScpContainer, Assay, ScpMatrix, AggregationLink: container structures
- VariableFilter: structured filters on a single feature variable
- FeatureExpression: predicate expressions over feature variables
"""
