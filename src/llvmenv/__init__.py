"""Manage multiple LLVM/Clang builds."""
