"""
Tradeflow Numbering Store - Code Sequences
============================================
CodeSequence holds the next sequence value of one document type for
one month. DbCodeAllocator locks the row while it advances it.
"""

from __future__ import annotations

from django.db import models


class CodeSequence(models.Model):
    doc_type = models.CharField(max_length=32)
    period_key = models.CharField(max_length=7)
    next_value = models.PositiveIntegerField(default=1)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "tradeflow_code_sequences"
        ordering = ["doc_type", "period_key"]
        constraints = [
            models.UniqueConstraint(
                fields=["doc_type", "period_key"],
                name="uq_code_sequence_period",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.doc_type}@{self.period_key}: {self.next_value}"
