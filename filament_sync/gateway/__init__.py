"""Filament gateway: event decoding and the connection/subscription controller.

Inbound frames are parsed by ``decoder``, validated into the typed events in
``events`` and handed by ``controller`` to the state store.
"""
