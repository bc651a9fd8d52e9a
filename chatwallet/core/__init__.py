"""Wallet bot core: conversation flows, quotes, execution and storage."""
