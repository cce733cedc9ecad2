"""pmt_gain.analysis -- report building."""
