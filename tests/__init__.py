# SPDX-License-Identifier: Apache-2.0
"""
Discriminator graph SDK tests.

Unit tests per component (keys, decoder, stores, ledger sources) plus
behavioral tests for ingestion, the write-through query, the pollers, the
service facade and the command line.
"""
