from pathlib import Path
from typing import List
from loguru import logger
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, TableStyle, LongTable
from reportlab.lib.enums import TA_LEFT, TA_CENTER
from reportlab.platypus.flowables import KeepTogether
import openpyxl
from openpyxl.styles import PatternFill, Border, Side, Alignment, Font
from openpyxl.utils import get_column_letter

from ..models.entities import AllocationResult, Iteration, RiskLevel


class ReportGenerator:
    """Serviço responsável pela geração dos relatórios do plano"""

    def __init__(self, result: AllocationResult, output_dir: str, project_name: str):
        """
        Inicializa o gerador de relatórios

        Args:
            result: Resultado da alocação
            output_dir: Diretório de saída dos relatórios
            project_name: Nome do projeto
        """
        self.result = result
        self.output_dir = Path(output_dir)
        self.project_name = project_name

        # Cria o diretório de saída se não existir
        self.output_dir.mkdir(parents=True, exist_ok=True)

        # Define os estilos do PDF
        self.styles = getSampleStyleSheet()
        self._setup_styles()

        # Cores do Excel por nível de risco
        self.excel_colors = {
            RiskLevel.VERY_LOW: PatternFill(start_color='B3FFB3', end_color='B3FFB3', fill_type='solid'),  # Verde claro
            RiskLevel.LOW: PatternFill(start_color='B3D1FF', end_color='B3D1FF', fill_type='solid'),       # Azul claro
            RiskLevel.MEDIUM: PatternFill(start_color='FFFFB3', end_color='FFFFB3', fill_type='solid'),    # Amarelo claro
            RiskLevel.HIGH: PatternFill(start_color='FFB3B3', end_color='FFB3B3', fill_type='solid'),      # Vermelho claro
            'header': PatternFill(start_color='FF6B00', end_color='FF6B00', fill_type='solid'),            # Laranja
        }

    @property
    def file_stem(self) -> str:
        return f"plano_{self.project_name.strip().replace(' ', '_').lower()}"

    def _setup_styles(self):
        """Configura estilos personalizados para o relatório"""
        self.styles.add(ParagraphStyle(
            name='CustomTitle',
            parent=self.styles['Title'],
            fontSize=16,
            spaceAfter=30,
            textColor=colors.HexColor('#FF6B00'),  # Laranja
            alignment=TA_CENTER
        ))

        self.styles.add(ParagraphStyle(
            name='CustomHeading1',
            parent=self.styles['Heading1'],
            fontSize=14,
            spaceAfter=12,
            textColor=colors.HexColor('#FF6B00'),
            alignment=TA_LEFT
        ))

        self.styles.add(ParagraphStyle(
            name='CustomHeading2',
            parent=self.styles['Heading2'],
            fontSize=12,
            spaceAfter=6,
            textColor=colors.HexColor('#FF8533'),  # Laranja mais claro
            alignment=TA_LEFT
        ))

        self.styles.add(ParagraphStyle(
            name='NormalWrap',
            parent=self.styles['Normal'],
            fontSize=10,
            leading=12,
            spaceAfter=6,
            alignment=TA_LEFT
        ))

        self.styles.add(ParagraphStyle(
            name='TableCell',
            parent=self.styles['Normal'],
            fontSize=9,
            leading=11,
            alignment=TA_LEFT
        ))

        self.styles.add(ParagraphStyle(
            name='TableHeader',
            parent=self.styles['Normal'],
            fontSize=10,
            leading=12,
            alignment=TA_LEFT,
            fontName='Helvetica-Bold',
            textColor=colors.white
        ))

    def _create_table_style(self, header_bg_color=colors.HexColor('#FF6B00')):
        """Cria um estilo padrão para as tabelas"""
        return TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), header_bg_color),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('GRID', (0, 0), (-1, -1), 1, colors.black),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('LEFTPADDING', (0, 0), (-1, -1), 6),
            ('RIGHTPADDING', (0, 0), (-1, -1), 6),
            ('TOPPADDING', (0, 0), (-1, -1), 6),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#FFF5EB')]),  # Branco e laranja muito claro
        ])

    @staticmethod
    def _period(iteration: Iteration) -> str:
        return f"{iteration.start_date.strftime('%d/%m/%Y')} a {iteration.end_date.strftime('%d/%m/%Y')}"

    @staticmethod
    def _risk_label(iteration: Iteration) -> str:
        assessment = iteration.risk_assessment
        if not assessment:
            return '-'
        return f"{assessment.risk_level.value} ({assessment.risk_score})"

    def _generate_markdown(self) -> str:
        """Gera o conteúdo do relatório em Markdown"""
        result = self.result
        report = []

        report.append(f"# Plano de Iterações - {self.project_name}")
        report.append("")

        # 1. Resumo
        report.append("## 1. Resumo")
        report.append("")
        report.append(f"- **Estratégia:** {result.strategy}")
        report.append(f"- **Iterações:** {len(result.iterations)}")
        report.append(f"- **Capacity por iteração:** {result.capacity.total_story_points} pontos ({result.capacity.total_hours:.1f}h)")
        report.append(f"- **Total de pontos agendados:** {result.total_points}")
        report.append(f"- **Gerado em:** {result.generated_at.strftime('%d/%m/%Y %H:%M')}")
        report.append("")

        # 2. Iterações
        report.append("## 2. Iterações")
        report.append("")
        for iteration in result.iterations:
            metrics = iteration.metrics
            report.append(f"### {iteration.name} ({self._period(iteration)})")
            report.append("")
            report.append(f"**Objetivo:** {iteration.goal_text or '-'}")
            report.append("")
            if metrics:
                report.append(
                    f"- **Pontos:** {metrics.total_points} ({metrics.points_utilization:.1f}% da capacity)"
                    + (" - acima da capacity" if metrics.is_over_capacity else "")
                )
            report.append(f"- **Risco:** {self._risk_label(iteration)}")
            report.append("")
            report.append("| ID | Título | Prioridade | Story Points |")
            report.append("|----|--------|------------|--------------|")
            for item in iteration.items:
                report.append(f"| {item.id} | {item.title} | {item.priority.value} | {item.points} |")
            report.append("")

            if iteration.mitigations:
                report.append("**Mitigações:**")
                report.append("")
                for mitigation in iteration.mitigations:
                    report.append(f"- [{mitigation.priority.value}] {mitigation.description}")
                report.append("")

            if iteration.recommendations:
                report.append("**Recomendações:**")
                report.append("")
                for recommendation in iteration.recommendations:
                    report.append(f"- [{recommendation.priority.value}] {recommendation.message}")
                report.append("")

        # 3. Itens não agendados
        if result.unscheduled_item_ids:
            report.append("## 3. Itens não agendados")
            report.append("")
            report.append(", ".join(result.unscheduled_item_ids))
            report.append("")

        # 4. Diagnósticos
        if result.diagnostics:
            report.append("## 4. Diagnósticos")
            report.append("")
            report.append("| Tipo | Mensagem | Itens |")
            report.append("|------|----------|-------|")
            for diagnostic in result.diagnostics:
                report.append(
                    f"| {diagnostic.kind.value} | {diagnostic.message} | {', '.join(diagnostic.item_ids) or '-'} |"
                )
            report.append("")

        return "\n".join(report)

    def _paragraphs(self, values: List[str], style: str = 'TableCell') -> list:
        return [Paragraph(str(value), self.styles[style]) for value in values]

    def generate(self) -> None:
        """Gera o relatório do plano em Markdown, PDF e Excel"""
        markdown_path = self.output_dir / f"{self.file_stem}.md"
        markdown_path.write_text(self._generate_markdown(), encoding='utf-8')
        logger.info(f"Relatório Markdown gerado em {markdown_path}")

        self._generate_pdf()
        self._generate_excel()

    def _generate_pdf(self) -> None:
        """Gera o relatório do plano em PDF"""
        result = self.result
        pdf_path = self.output_dir / f"{self.file_stem}.pdf"
        doc = SimpleDocTemplate(
            str(pdf_path),
            pagesize=A4,
            rightMargin=2*cm,
            leftMargin=2*cm,
            topMargin=2*cm,
            bottomMargin=2*cm
        )
        available_width = doc.width
        elements = []

        elements.append(Paragraph(f"Plano de Iterações: {self.project_name}", self.styles['CustomTitle']))
        elements.append(Spacer(1, 12))

        # 1. Resumo
        elements.append(Paragraph("1. Resumo", self.styles['CustomHeading1']))
        summary_data = [self._paragraphs(['Métrica', 'Valor'], 'TableHeader')]
        summary_data.extend([
            self._paragraphs(['Estratégia', result.strategy]),
            self._paragraphs(['Iterações', len(result.iterations)]),
            self._paragraphs(['Capacity por iteração', f"{result.capacity.total_story_points} pontos"]),
            self._paragraphs(['Total de pontos agendados', result.total_points]),
            self._paragraphs(['Itens não agendados', len(result.unscheduled_item_ids)]),
        ])
        summary_table = LongTable(summary_data, colWidths=[available_width * 0.6, available_width * 0.4])
        summary_table.setStyle(self._create_table_style())
        elements.append(KeepTogether(summary_table))
        elements.append(Spacer(1, 12))

        # 2. Iterações
        elements.append(Paragraph("2. Iterações", self.styles['CustomHeading1']))
        for iteration in result.iterations:
            elements.append(Paragraph(
                f"{iteration.name} - {self._period(iteration)} - Risco: {self._risk_label(iteration)}",
                self.styles['CustomHeading2']
            ))
            elements.append(Paragraph(f"Objetivo: {iteration.goal_text or '-'}", self.styles['NormalWrap']))

            items_data = [self._paragraphs(['ID', 'Título', 'Prioridade', 'Story Points'], 'TableHeader')]
            for item in iteration.items:
                items_data.append(self._paragraphs([item.id, item.title, item.priority.value, item.points]))
            items_table = LongTable(
                items_data,
                colWidths=[
                    available_width * 0.15,  # ID
                    available_width * 0.55,  # Título
                    available_width * 0.15,  # Prioridade
                    available_width * 0.15   # Story Points
                ]
            )
            items_table.setStyle(self._create_table_style())
            elements.append(KeepTogether(items_table))

            for mitigation in iteration.mitigations:
                elements.append(Paragraph(
                    f"Mitigação [{mitigation.priority.value}]: {mitigation.description}", self.styles['NormalWrap']
                ))
            for recommendation in iteration.recommendations:
                elements.append(Paragraph(
                    f"Recomendação [{recommendation.priority.value}]: {recommendation.message}", self.styles['NormalWrap']
                ))
            elements.append(Spacer(1, 12))

        # 3. Diagnósticos
        if result.diagnostics:
            elements.append(Paragraph("3. Diagnósticos", self.styles['CustomHeading1']))
            diagnostics_data = [self._paragraphs(['Tipo', 'Mensagem', 'Itens'], 'TableHeader')]
            for diagnostic in result.diagnostics:
                diagnostics_data.append(self._paragraphs([
                    diagnostic.kind.value, diagnostic.message, ', '.join(diagnostic.item_ids) or '-'
                ]))
            diagnostics_table = LongTable(
                diagnostics_data,
                colWidths=[available_width * 0.2, available_width * 0.55, available_width * 0.25]
            )
            diagnostics_table.setStyle(self._create_table_style())
            elements.append(KeepTogether(diagnostics_table))

        doc.build(elements)
        logger.info(f"Relatório PDF gerado em {pdf_path}")

    def _generate_excel(self) -> None:
        """Gera a planilha do plano, uma linha por item agendado"""
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Plano"

        headers = ["Sprint", "Início", "Término", "ID", "Título", "Prioridade", "Score", "Story Points", "Risco da Sprint"]
        thin = Side(style='thin')
        border = Border(left=thin, right=thin, top=thin, bottom=thin)

        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = Font(bold=True, color='FFFFFF')
            cell.fill = self.excel_colors['header']
            cell.alignment = Alignment(horizontal='center')
            cell.border = border

        row = 2
        for iteration in self.result.iterations:
            level = iteration.risk_assessment.risk_level if iteration.risk_assessment else None
            for item in iteration.items:
                values = [
                    iteration.name,
                    iteration.start_date,
                    iteration.end_date,
                    item.id,
                    item.title,
                    item.priority.value,
                    item.priority_score,
                    item.points,
                    level.value if level else '-',
                ]
                for col, value in enumerate(values, start=1):
                    cell = ws.cell(row=row, column=col, value=value)
                    cell.border = border
                    if col in (2, 3):
                        cell.number_format = 'dd/mm/yyyy'
                if level:
                    ws.cell(row=row, column=len(headers)).fill = self.excel_colors[level]
                row += 1

        widths = [12, 12, 12, 12, 50, 12, 10, 14, 16]
        for col, width in enumerate(widths, start=1):
            ws.column_dimensions[get_column_letter(col)].width = width

        excel_path = self.output_dir / f"{self.file_stem}.xlsx"
        wb.save(str(excel_path))
        logger.info(f"Relatório Excel gerado em {excel_path}")
