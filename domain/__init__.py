"""Describes the Fast Order domain. Centres around `generate_order`.

Why is this hard?

- Writing the next order line is handed to a large language model served
  behind an api. The api is slow sometimes and down sometimes.
- Everyone in the group hits the button at about the same time, so one broken
  upstream should fail fast for all of them rather than hang each request.
- The output is pasted straight into WhatsApp, so the model's formatting
  habits have to be cleaned up.

Prompt building and cleaning are pure. The only state is the circuit breaker
owned by the `LLMService`.
"""
