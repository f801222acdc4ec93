from pharmastock.models.medicine import Medicine
from pharmastock.models.batch import Batch
from pharmastock.models.sale import Sale, SaleItem

__all__ = ["Medicine", "Batch", "Sale", "SaleItem"]
