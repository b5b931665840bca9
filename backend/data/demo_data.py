"""Demo catalog and policies used by the admin "Load Demo Data" action."""
from typing import List

from ..schemas.io_models import KnowledgeDocument, ProductRecord, StoreConfiguration

DEMO_STORE_NAME = "WooGemini Demo Shop"

DEMO_POLICIES = """
**Return Policy:** You can return items within 30 days of receipt. Items must be unused and in original packaging.
**Shipping:** Free shipping on orders over $50. Standard shipping takes 3-5 business days.
**Contact:** Support email is support@woogemini.com.
"""


def demo_products() -> List[ProductRecord]:
    return [
        ProductRecord(id="101", name="Vintage Leather Jacket", price="199.99", category="Clothing",
                      description="Genuine leather, classic fit, brown.", stock_status="In Stock",
                      image_url="https://picsum.photos/seed/jacket/200/200"),
        ProductRecord(id="102", name="Wireless Noise-Canceling Headphones", price="249.50", category="Electronics",
                      description="40hr battery life, active noise cancellation.", stock_status="In Stock",
                      image_url="https://picsum.photos/seed/headphones/200/200"),
        ProductRecord(id="103", name="Organic Matcha Tea Powder", price="24.00", category="Grocery",
                      description="Premium ceremonial grade from Japan.", stock_status="Low Stock",
                      image_url="https://picsum.photos/seed/tea/200/200"),
        ProductRecord(id="104", name="Minimalist Desk Lamp", price="45.00", category="Home",
                      description="LED, adjustable brightness, matte black.", stock_status="Out of Stock",
                      image_url="https://picsum.photos/seed/lamp/200/200"),
    ]


def demo_configuration() -> StoreConfiguration:
    """Demo store carrying the policies both as the legacy text field and as one document."""
    return StoreConfiguration(
        store_name=DEMO_STORE_NAME,
        policies=DEMO_POLICIES,
        documents=[
            KnowledgeDocument(id="doc-demo-policies", name="store-policies.md",
                              content=DEMO_POLICIES.strip(), type="markdown"),
        ],
        products=demo_products(),
    )
