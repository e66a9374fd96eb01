"""HR change-request workflow package.

Feature modules (changes, reference, audit) each carry their own model,
repository protocols, MySQL repositories and services; Flask controllers are a
thin layer on top.
"""
