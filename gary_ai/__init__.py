"""Gary AI chat widget client.

Python rendition of the Gary AI website chat widget: a coordinator that
manages a conversation session, talks to the plugin's chat endpoint under a
client-side rate limit, and keeps conversation history in a local key-value
store.
"""

__version__ = "1.1.0"
