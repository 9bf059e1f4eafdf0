"""Disaggregation engine.

Pure array arithmetic over labelled fields:
1. ShareDisaggregator — split a parent category by coarse shares
2. ConservationChecker — verify the split sums back to the parent
3. FieldRecombiner — swap the parent for its children
4. WeightedAggregator — category-weighted indicator (BII)

No file I/O. All inputs arrive fully materialized.
"""
