"""pmt_gain.io -- measurement table input and fit archive output."""
