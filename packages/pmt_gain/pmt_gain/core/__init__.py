"""pmt_gain.core -- selection, log transform, fitting and the per-channel pipeline.

Modules
-------
config      GainVoltageConfig + YAML loading
selection   Channel Data Selector and Validity Gate
transform   error-propagating log transform
fitting     iterative both-axis weighted power-law fitter
pipeline    per-channel orchestration
"""
