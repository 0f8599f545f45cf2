import os

from dotenv import load_dotenv
from langchain_google_genai import ChatGoogleGenerativeAI, GoogleGenerativeAIEmbeddings
from langchain_groq import ChatGroq

from doc_chat.exception.custom_exception import DocumentChatException
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.utils.config_loader import load_config

PROVIDER_KEYS = {
    "google": "GOOGLE_API_KEY",
    "groq": "GROQ_API_KEY",
}


class ApiKeyManager:
    def __init__(self, providers: list[str]):
        load_dotenv()
        self.keys = {}

        required = sorted({PROVIDER_KEYS[p] for p in providers if p in PROVIDER_KEYS})

        # Iterate over the keys the configured providers need:
        for k in required:
            if val := os.getenv(k):
                self.keys[k] = val
                log.info("Loaded %s from env", k)
            else:
                log.error("Missing required API key: %s", k)

        if len(self.keys) != len(required):
            missing = [k for k in required if k not in self.keys]
            raise DocumentChatException(f"Missing API keys: {', '.join(missing)}")

    def get(self, key: str) -> str:
        return self.keys[key]


class ModelLoader:
    """
    Responsible for:
    - Loading the embedding model
    - Loading the chat (completion) LLM
    """

    def __init__(self, config: dict | None = None):
        self.config = config if config is not None else load_config()
        log.info("YAML config loaded | config_keys=%s", list(self.config.keys()))

        providers = [
            self.config["embedding_model"]["provider"],
            self.config["llm"]["chat"]["provider"],
        ]
        self.api_key_mgr = ApiKeyManager(providers)
        self.api_keys = self.api_key_mgr.keys

    def load_embeddings(self):
        """
        Load and return the configured embedding model.
        """
        emb_config = self.config["embedding_model"]
        provider = emb_config.get("provider", "google")
        model_name = emb_config["model_name"]

        if provider != "google":
            raise ValueError(f"Unsupported embedding provider {provider}")

        try:
            log.info("Loading embedding model | model=%s", model_name)
            return GoogleGenerativeAIEmbeddings(
                model=model_name, google_api_key=self.api_keys.get("GOOGLE_API_KEY")
            )
        except Exception as e:
            log.error("Error loading embedding model | error=%s", str(e))
            raise DocumentChatException("Failed to load embedding model", e) from e

    def load_llm(self, role: str = "chat"):
        """
        Load and return the configured LLM for a role (only "chat" is used).
        """
        if role not in self.config["llm"]:
            log.error("LLM role not found in config | role=%s", role)
            raise ValueError(f"LLM role '{role}' not found in config")

        llm_config = self.config["llm"][role]

        provider = llm_config["provider"]
        model = llm_config["model_name"]
        temp = llm_config.get("temperature")
        max_t = llm_config.get("max_tokens")

        log.info("Loading LLM | role=%s | provider=%s | model=%s", role, provider, model)

        if provider == "google":
            return ChatGoogleGenerativeAI(
                model=model,
                google_api_key=self.api_keys.get("GOOGLE_API_KEY"),
                temperature=temp,
                max_output_tokens=max_t,
            )

        if provider == "groq":
            model_kwargs = {}
            top_p = llm_config.get("top_p")
            if top_p is not None:
                model_kwargs["top_p"] = top_p

            return ChatGroq(
                model=model,
                api_key=self.api_keys.get("GROQ_API_KEY"),
                temperature=temp,
                max_tokens=max_t,
                model_kwargs=model_kwargs,
            )

        raise ValueError(f"Unsupported provider {provider}")
