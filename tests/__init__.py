"""
Inference Tests Package
=======================

Unit tests for the output decoder:
    - test_tensor: Tensor handles, branch offsets, scratch allocator
    - test_multinomial: CDF, seeded sampling, batch evaluation
    - test_action_spec: Action spec, action buffers, stores
    - test_appliers: Per-kind output appliers
    - test_tensor_applier: Output dispatch by tensor name
    - test_runner: Policy network, model runner, config, metrics, deployment
"""
