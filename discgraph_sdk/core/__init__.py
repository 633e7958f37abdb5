# discgraph_sdk/core/__init__.py
# SPDX-License-Identifier: Apache-2.0
"""Dependency-free building blocks: keys, decoding, errors, gates, retry, settings."""
