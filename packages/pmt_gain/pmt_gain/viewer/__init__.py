"""pmt_gain.viewer -- per-channel figures."""
