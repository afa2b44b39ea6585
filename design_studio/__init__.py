"""
Product design studio pipeline.

Modules:
- selection: attribute tags picked by the user and the option catalog
- prompts: design style prompts and mockup prompt tables
- generator: image model adapter (OpenAI / Replicate)
- listing: listing LLM adapter and parsing
- gateway: classified design / mockup / listing requests
- store: design and mockup selections
- events: observable pipeline events
- core: stage orchestration
- export: archive packaging
- favorites: saved artifacts per user
- config: environment settings
"""
