"""
ML stack provisioner.

This package provides the settings, tool provisioning and the ordered
installation stages for a machine-learning application stack.
"""
