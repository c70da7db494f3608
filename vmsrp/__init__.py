"""
Top-level package for the training content package recommender.

Given a requirement profile collected from a corporate customer, the
pipeline in :mod:`vmsrp.pipeline` narrows the course catalog down to a
small, explained and ordered package.  Collaborators (catalog store,
embedding store, completion client, encoder, package sink) are plain
objects passed in by the caller; nothing is loaded or connected on
import.
"""
