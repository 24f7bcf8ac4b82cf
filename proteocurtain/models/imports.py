"""
Pydantic schemas for the generic dataset-import payload.

A dataset arrives as loosely typed JSON (column-mapping forms, UniProt extra
data, the persisted selection map). These schemas validate that payload and
convert it into the engine's typed records right away; nothing downstream
sees the generic form.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from proteocurtain.mapping.accession_index import (
    AccessionIndex,
    FuzzyMaps,
    build_candidate_table,
)
from proteocurtain.models.domain import ColumnMapping, TransformOptions
from proteocurtain.models.selection_map import DatasetHandle, SelectionMap

# Generic extra field values allowed at the import boundary only
GenericExtraField = Union[float, int, str, List[Any], Dict[str, Any], None]


class BaseSchema(BaseModel):
    """Base schema accepting both the wire (camelCase) and python names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DifferentialFormSchema(BaseSchema):
    primary_ids: str = Field(alias="primaryIDs")
    gene_names: str = Field(default="", alias="geneNames")
    fold_change: str = Field(default="", alias="foldChange")
    significant: str = Field(default="", alias="significant")
    comparison: str = Field(default="", alias="comparison")
    transform_fc: bool = Field(default=False, alias="transformFC")
    transform_significant: bool = Field(default=False, alias="transformSignificant")
    reverse_fold_change: bool = Field(default=False, alias="reverseFoldChange")


class RawFormSchema(BaseSchema):
    primary_ids: str = Field(default="", alias="primaryIDs")
    samples: List[str] = Field(default_factory=list)
    log2: bool = False


class UniprotExtraSchema(BaseSchema):
    db: Dict[str, Dict[str, GenericExtraField]] = Field(default_factory=dict)
    acc_map: Dict[str, GenericExtraField] = Field(default_factory=dict, alias="accMap")
    gene_name_to_acc: Dict[str, GenericExtraField] = Field(default_factory=dict, alias="geneNameToAcc")
    data_map: Dict[str, GenericExtraField] = Field(default_factory=dict, alias="dataMap")


class DataMapsSchema(BaseSchema):
    genes_map: Dict[str, GenericExtraField] = Field(default_factory=dict, alias="genesMap")
    primary_ids_map: Dict[str, GenericExtraField] = Field(default_factory=dict, alias="primaryIDsMap")
    all_genes: List[str] = Field(default_factory=list, alias="allGenes")


class ExtraDataSchema(BaseSchema):
    uniprot: Optional[UniprotExtraSchema] = None
    data: Optional[DataMapsSchema] = None


class DatasetImportSchema(BaseSchema):
    """Top-level dataset descriptor."""

    differential_form: DifferentialFormSchema = Field(alias="differentialForm")
    raw_form: RawFormSchema = Field(default_factory=RawFormSchema, alias="rawForm")
    selected_map: Dict[str, Dict[str, Any]] = Field(default_factory=dict, alias="selectedMap")
    select_operation_names: List[str] = Field(default_factory=list, alias="selectOperationNames")
    extra_data: Optional[ExtraDataSchema] = Field(default=None, alias="extraData")
    fetch_uniprot: bool = Field(default=False, alias="fetchUniprot")

    @field_validator("selected_map", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or {}

    def to_column_mapping(self) -> ColumnMapping:
        diff = self.differential_form
        return ColumnMapping(
            primary_id=diff.primary_ids,
            gene_names=diff.gene_names,
            fold_change=diff.fold_change,
            significance=diff.significant,
            comparison=diff.comparison,
            samples=tuple(self.raw_form.samples),
            raw_primary_id=self.raw_form.primary_ids or None,
        )

    def to_transform_options(self) -> TransformOptions:
        diff = self.differential_form
        return TransformOptions(
            log2_fold_change=diff.transform_fc,
            minus_log10_significance=diff.transform_significant,
            reverse_fold_change=diff.reverse_fold_change,
            log2_raw=self.raw_form.log2,
        )

    def to_selection_map(self) -> SelectionMap:
        return SelectionMap.from_raw(self.selected_map)

    def to_dataset_handle(self, dataset_id: str) -> DatasetHandle:
        selection_map = self.to_selection_map()
        names = list(self.select_operation_names)
        for name in selection_map.selection_names():
            if name not in names:
                names.append(name)
        return DatasetHandle(dataset_id=dataset_id, selection_map=selection_map, operation_names=names)

    def to_accession_index(self) -> Optional[AccessionIndex]:
        uniprot = self.extra_data.uniprot if self.extra_data else None
        if uniprot is None:
            return None
        return AccessionIndex(
            gene_name_to_accessions=build_candidate_table(uniprot.gene_name_to_acc, upper_keys=True),
            accession_to_primary_ids=build_candidate_table(uniprot.acc_map, upper_keys=True),
            entries={key: dict(value) for key, value in uniprot.db.items()},
            data_map={str(k): str(v) for k, v in uniprot.data_map.items() if v is not None},
        )

    def to_fuzzy_maps(self) -> Optional[FuzzyMaps]:
        data = self.extra_data.data if self.extra_data else None
        if data is None:
            return None
        return FuzzyMaps(
            genes_map=build_candidate_table(data.genes_map),
            primary_ids_map=build_candidate_table(data.primary_ids_map),
        )

    def all_genes(self) -> List[str]:
        data = self.extra_data.data if self.extra_data else None
        return list(data.all_genes) if data else []
