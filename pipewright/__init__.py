"""pipewright: sequential tool pipelines with failure triage.

Stages wrap external tools (codegen models, linters, test runners, container
engines). The runner executes them in order, captures artifacts, triages
failures and writes a structured JSON report.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

__version__ = "0.1.0"
