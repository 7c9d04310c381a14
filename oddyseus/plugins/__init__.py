from .openai_compat import LLMConfig, OpenAICompatClient, clean_json_response
