"""
Channels Module
===============

Line-delimited control channels shared with the analysis engine.

Example:
    from imaging_handshake.channels import ControlChannelPair

    with ControlChannelPair.from_config(settings.channels) as channels:
        channels.open_outbound()
        channels.open_receive()
        channels.send_best_effort(session.session_id)
"""

from imaging_handshake.channels.pipe import ChannelMetrics, ControlChannelPair


__all__ = [
    "ChannelMetrics",
    "ControlChannelPair",
]
