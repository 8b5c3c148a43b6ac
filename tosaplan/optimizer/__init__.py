"""Standalone allocators that place tensors in memory pools from their lifetimes."""