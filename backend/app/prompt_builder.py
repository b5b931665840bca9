#!/usr/bin/env python3
"""
Prompt builder module for the store assistant.

This module compiles the store configuration (name, policies or documents,
product catalog) into the system instruction given to the LLM. Output is a
pure function of the configuration.
"""

import json
from typing import Any, Dict, List

from .config import Config
from ..schemas.io_models import StoreConfiguration, ProductRecord

NO_DOCUMENTS_TEXT = "No additional documents."
NO_PRODUCTS_TEXT = "No products uploaded yet."


class PromptBuilder:
    """Builds the grounding system instruction for a store."""

    assistant_name = "WooGenie"

    role_template = (
        'You are {assistant}, a helpful and friendly AI customer support assistant '
        'for an online store named "{store_name}".'
    )

    instructions = """INSTRUCTIONS:
1. Answer customer questions based *only* on the provided Product Catalog and Store Policies & Documents.
2. If a customer asks about a product, check the catalog for price, stock status, and description.
3. If a product's stock status says it is out of stock (e.g. 'Out of Stock' or 'outofstock'), kindly tell the customer it is currently unavailable.
4. If the answer is not in the provided data, politely say you don't have that information and suggest they contact support.
5. Never make up products, product details, or policies that are not listed.
6. Keep answers concise (under 100 words) unless the customer asks for more detail.
7. Use a professional yet warm tone.
8. Format prices nicely (e.g. add a currency symbol if it is missing)."""

    def build_system_instruction(self, config: StoreConfiguration) -> str:
        """
        Build the system instruction for a store.

        Args:
            config: Store configuration to compile

        Returns:
            System instruction text
        """
        sections = [
            self.role_template.format(assistant=self.assistant_name, store_name=config.store_name),
            "YOUR KNOWLEDGE BASE:",
            "1. STORE POLICIES & DOCUMENTS:\n" + self.format_knowledge(config),
            "2. PRODUCT CATALOG:\n" + self.format_catalog(config.products),
            self.instructions,
        ]
        return "\n\n".join(sections) + "\n"

    def format_knowledge(self, config: StoreConfiguration) -> str:
        """Render the documents collection as labelled sections."""
        docs = config.documents
        if not docs:
            return NO_DOCUMENTS_TEXT
        return "\n\n".join(f"--- {d.name} ---\n{d.content}" for d in docs)

    def format_catalog(self, products: List[ProductRecord]) -> str:
        """Render at most MAX_PROMPT_PRODUCTS products as indented JSON."""
        if not products:
            return NO_PRODUCTS_TEXT
        limited = products[:Config.MAX_PROMPT_PRODUCTS]
        return json.dumps([product_to_prompt_dict(p) for p in limited], indent=2, ensure_ascii=False)


class PolicyPromptBuilder(PromptBuilder):
    """Variant for stores that keep their policies in one free-text field."""

    def format_knowledge(self, config: StoreConfiguration) -> str:
        policies = config.policies.strip()
        return policies if policies else NO_DOCUMENTS_TEXT

    def format_catalog(self, products: List[ProductRecord]) -> str:
        if not products:
            return NO_PRODUCTS_TEXT
        lines = []
        for p in products:
            lines.append(
                f"- ID: {p.id}, Name: {p.name}, Price: {p.price}, Category: {p.category}, "
                f"Stock: {p.stock_status}\n  Description: {p.description}"
            )
        return "\n".join(lines)


def product_to_prompt_dict(product: ProductRecord) -> Dict[str, Any]:
    """Flatten a record for the JSON catalog; extra columns never override canonical fields."""
    data = product.model_dump(by_alias=True, exclude_none=True, exclude={"extra"})
    for key, value in product.extra.items():
        data.setdefault(key, value)
    return data


def get_prompt_builder(mode: str = None) -> PromptBuilder:
    """Return the builder for a knowledge mode ('documents' or 'policies')."""
    mode = (mode or Config.KNOWLEDGE_MODE).lower()
    if mode == "policies":
        return PolicyPromptBuilder()
    return PromptBuilder()


def main():
    """Print the instruction compiled from the demo store."""
    from ..data.demo_data import demo_configuration

    config = demo_configuration()
    for mode in ("documents", "policies"):
        print(f"\n=== {mode} ===")
        print(get_prompt_builder(mode).build_system_instruction(config))


if __name__ == "__main__":
    main()
