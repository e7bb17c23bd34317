"""Coverage Bounded Context.

Responsible for RF propagation and signal analysis:
- Value Objects: LinkParameters, RadioNode, CoverageSample, LinkAssessment
- Settings: PropagationSettings (all tunable model constants)
- Services: deygout_loss, evaluate_residual_one_way, evaluate_link
- Ray tracer: begin_coverage / extend / cancel (CoverageSession)
"""
