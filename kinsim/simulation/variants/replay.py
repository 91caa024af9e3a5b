"""Write out the explicit genome of a sample: one sequence per chromosome copy, with the sample's alleles applied to
the reference. The output directory gets a FASTA and a reference.txt describing the new sequences, so it can be
opened as a ReferenceGenome in its own right.
"""
import logging
import os
import time

import pysam

from kinsim.lib.reference import REFERENCE_FILE, EITHER, HAPLOID, normalize_sex, format_seq_line
import kinsim.lib.vcfio as vio

logger = logging.getLogger(__name__)


GENOME_FASTA = 'genome.fa'
LINE_WIDTH = 60


def derive_name(name, copy, count):
  """Sequences that are split into two haploid copies are called <name>_0 and <name>_1"""
  return '{}_{}'.format(name, copy) if count > 1 else name


def replay_haplotype(reference, seq_id, records, sample_idx, copy, count):
  """Sequence of one chromosome copy with the sample's alleles on that copy applied.

  :param reference: ReferenceGenome
  :param seq_id: sequence index
  :param records: sorted VcfRecords for this sequence
  :param sample_idx: sample column
  :param copy: which chromosome copy (GT index)
  :param count: number of copies expected in the GT
  :return: sequence string
  """
  name = reference.names[seq_id]
  out, cursor = [], 0
  for rec in records:
    gt = rec.gt(sample_idx)
    if gt is None or len(gt) != count:
      raise ValueError('Genotype with incorrect ploidy at {}:{} expected {} copies, found {}'.format(
        name, rec.pos, count, 'none' if gt is None else len(gt)))
    a = gt[copy]
    if a == 0:
      if cursor > rec.start:
        raise ValueError(
          'Encountered ref allele that is overlapped by previous long variant (may be representable using an ALT '
          'of "*"), currently at {}:{} already written to {}:{}'.format(name, rec.pos, name, cursor + 1))
    elif a > 0:
      allele = rec.alts[a - 1]
      if allele == vio.SPANNING_DELETION:
        if cursor <= rec.start:
          raise ValueError('Encountered deletion allele "*", but site is not covered by an earlier deletion, '
                           'currently at {}:{}'.format(name, rec.pos))
      elif vio.is_symbolic(allele):
        raise ValueError('Symbolic variants are not supported, currently at {}:{}'.format(name, rec.pos))
      else:
        if cursor > rec.start:
          raise ValueError('Overlapping variants not supported, currently at {}:{} already written to {}:{}'.format(
            name, rec.pos, name, cursor + 1))
        out += [reference.read(seq_id, cursor, rec.start), allele.upper()]
        cursor = rec.end
  out.append(reference.read(seq_id, cursor, reference.length(seq_id)))
  return ''.join(out)


def write_fasta_record(fp, name, seq):
  fp.write('>{}\n'.format(name))
  for i in range(0, len(seq), LINE_WIDTH):
    fp.write(seq[i:i + LINE_WIDTH] + '\n')


class SampleReplayer(object):
  def __init__(self, reference):
    self.reference = reference

  def replay(self, vcf_in, out_dir, sample):
    """

    :param vcf_in: VCF with the sample's genotypes
    :param out_dir: directory for genome.fa and reference.txt. Created if needed
    :param sample: sample name
    :return: path to the FASTA written
    """
    t0 = time.time()
    header, records = vio.read_vcf(vcf_in)
    sample_idx = header.sample_index(sample)
    sex = normalize_sex(header.sexes().get(sample, EITHER))
    logger.debug('Replaying {} (sex {})'.format(sample, sex))

    if not os.path.exists(out_dir):
      os.makedirs(out_dir)
    fasta_fname = os.path.join(out_dir, GENOME_FASTA)
    # The default only matters to someone using this genome without specifying the same sex
    spec_lines = ['version 1', '\t'.join([EITHER, 'def', HAPLOID, 'linear'])]
    with open(fasta_fname, 'w') as fp:
      for seq_id, name, seq_records in vio.by_sequence(self.reference.names, records):
        ref_seq = self.reference.sequence(seq_id, sex)
        count = ref_seq.count
        if count == 2:
          for copy in range(2):
            spec_lines.append(format_seq_line(
              sex, derive_name(name, copy, count), HAPLOID, ref_seq.linear, derive_name(name, 1 - copy, count)))
        elif count == 1:
          spec_lines.append(format_seq_line(sex, name, ref_seq.ploidy, ref_seq.linear, ref_seq.haploid_complement))
        for copy in range(count):
          write_fasta_record(
            fp, derive_name(name, copy, count),
            replay_haplotype(self.reference, seq_id, seq_records, sample_idx, copy, count))

    with open(os.path.join(out_dir, REFERENCE_FILE), 'w') as fp:
      fp.write('\n'.join(spec_lines) + '\n')
    pysam.faidx(fasta_fname)
    logger.debug('Replayed {} to {} in {:0.2f}s'.format(sample, out_dir, time.time() - t0))
    return fasta_fname
