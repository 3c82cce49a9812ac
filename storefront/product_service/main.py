# product_service/main.py
from fastapi import FastAPI, HTTPException

app = FastAPI(title="Product Service (dev mock)")


PRODUCTS = {
    1: {"id": 1, "name": "Opening Ceremony - Category A", "price": 120.00, "sale_rate": 0.0, "available_stock": 50},
    2: {"id": 2, "name": "Athletics Final - Category B", "price": 80.00, "sale_rate": 0.1, "available_stock": 200},
    3: {"id": 3, "name": "Swimming Heats - Family Pack", "price": 150.00, "sale_rate": 0.25, "available_stock": 5},
    7: {"id": 7, "name": "Closing Ceremony - Standard", "price": 50.00, "sale_rate": 0.1, "available_stock": 0},
}

@app.get("/products/{product_id}")
def get_product(product_id: int):
    product = PRODUCTS.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
