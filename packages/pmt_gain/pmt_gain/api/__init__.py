"""pmt_gain.api -- data types and exceptions shared by every stage."""
